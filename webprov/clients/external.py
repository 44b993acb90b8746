"""
Single facade over the generation and deployment services
"""
import logging
import re
from typing import Any, Dict, List, Optional

from .v0 import GenerationClient
from .vercel import DeploymentClient
from ..errors import PermanentRemoteError
from ..schemas.remote import ChatRef, DeploymentRef, DomainResult, ProjectRef

logger = logging.getLogger("webprov.clients")

_DOMAIN_RE = re.compile(r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


class ExternalProvisioningClient:
    """Remote calls used by the orchestrator; every method may raise a
    TransientRemoteError or PermanentRemoteError."""

    def __init__(
        self,
        generation: Optional[GenerationClient] = None,
        deployment: Optional[DeploymentClient] = None,
    ):
        self.generation = generation or GenerationClient()
        self.deployment = deployment or DeploymentClient()

    async def ensure_project(self, name: str, description: str) -> ProjectRef:
        return await self.generation.create_project(name, description)

    async def get_project_by_id(self, project_id: str) -> Optional[ProjectRef]:
        return await self.generation.get_project(project_id)

    async def ensure_chat(
        self,
        project_id: str,
        system_prompt: str,
        message: str,
        model_config: Dict[str, Any],
    ) -> ChatRef:
        chat = await self.generation.create_chat(project_id, system_prompt, message, model_config)
        if not chat.latest_version_id:
            raise PermanentRemoteError("chat has no generated version")
        return chat

    async def get_chat_by_id(self, chat_id: str) -> Optional[ChatRef]:
        return await self.generation.get_chat(chat_id)

    async def find_existing_deployment(self, project_id: str, chat_id: str, version_id: str) -> Optional[DeploymentRef]:
        return await self.generation.find_deployment(project_id, chat_id, version_id)

    async def create_deployment(self, project_id: str, chat_id: str, version_id: str) -> DeploymentRef:
        return await self.generation.create_deployment(project_id, chat_id, version_id)

    async def attach_domain(self, domain: str, deployment_id: str, target_project_slug: str) -> DomainResult:
        if not _DOMAIN_RE.match(domain):
            raise PermanentRemoteError(f"malformed domain: {domain}")
        logger.info("Adding domain %s for deployment %s", domain, deployment_id, extra={
            "component": "vercel",
            "project": target_project_slug,
        })
        try:
            return await self.deployment.add_project_domain(target_project_slug, domain)
        except PermanentRemoteError as e:
            if e.status_code != 409:
                raise
            # a conflict is fine when the domain already sits on this project
            existing = await self.deployment.get_project_domain(target_project_slug, domain)
            if existing is None:
                raise
            logger.info("Domain %s already attached to %s", domain, target_project_slug, extra={
                "component": "vercel",
                "project": target_project_slug,
            })
            return existing

    async def list_projects(self) -> List[ProjectRef]:
        return await self.generation.list_projects()

    async def list_chats(self, limit: int = 10) -> List[ChatRef]:
        return await self.generation.list_chats(limit=limit)

    async def aclose(self) -> None:
        await self.generation.aclose()
        await self.deployment.aclose()
