"""
Deployment service adapter (Vercel REST API): custom domain attachment
"""
import logging
from typing import Optional

import httpx

from .base import RemoteService
from ..config import VERCEL_API_URL, VERCEL_API_KEY, VERCEL_TEAM_ID, REMOTE_TIMEOUT_SECONDS
from ..schemas.remote import DomainResult

logger = logging.getLogger("webprov.clients.vercel")


class DeploymentClient(RemoteService):
    name = "vercel"

    def __init__(
        self,
        base_url: str = VERCEL_API_URL,
        api_key: str = VERCEL_API_KEY,
        team_id: str = VERCEL_TEAM_ID,
        timeout: float = REMOTE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        params = {"teamId": team_id} if team_id else None
        super().__init__(base_url, api_key, timeout, transport, default_params=params)

    async def get_project_domain(self, project_slug: str, domain: str) -> Optional[DomainResult]:
        """The domain as configured on the project, or None when it is not attached there"""
        payload = await self.request("GET", f"/v9/projects/{project_slug}/domains/{domain}", allow_404=True)
        if payload is None:
            return None
        return self.parse(DomainResult, payload)

    async def add_project_domain(self, project_slug: str, domain: str) -> DomainResult:
        """Attach a domain to the project that serves the deployment"""
        payload = await self.request("POST", f"/v10/projects/{project_slug}/domains", json={"name": domain})
        result = self.parse(DomainResult, payload)
        logger.info("Domain added: %s", result.name, extra={
            "component": "vercel",
            "project": project_slug,
            "verified": result.verified,
        })
        return result
