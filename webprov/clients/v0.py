"""
Generation service adapter (v0 Platform API): projects, chats, deployments
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import RemoteService
from ..config import V0_API_URL, V0_API_KEY, REMOTE_TIMEOUT_SECONDS
from ..errors import PermanentRemoteError
from ..schemas.remote import ChatRef, DeploymentRef, ProjectRef

logger = logging.getLogger("webprov.clients.v0")


class GenerationClient(RemoteService):
    name = "v0"

    def __init__(
        self,
        base_url: str = V0_API_URL,
        api_key: str = V0_API_KEY,
        timeout: float = REMOTE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, api_key, timeout, transport)

    async def create_project(self, name: str, description: str) -> ProjectRef:
        payload = await self.request("POST", "/projects", json={"name": name, "description": description})
        project = self.parse(ProjectRef, payload)
        logger.info("Created v0 project %s", project.id, extra={"component": "v0", "project_id": project.id})
        return project

    async def get_project(self, project_id: str) -> Optional[ProjectRef]:
        payload = await self.request("GET", f"/projects/{project_id}", allow_404=True)
        if payload is None:
            logger.warning("v0 project %s no longer exists", project_id, extra={"component": "v0"})
            return None
        return self.parse(ProjectRef, payload)

    async def create_chat(
        self,
        project_id: str,
        system_prompt: str,
        message: str,
        model_config: Dict[str, Any],
    ) -> ChatRef:
        payload = await self.request("POST", "/chats", json={
            "system": system_prompt,
            "message": message,
            "modelConfiguration": model_config,
            "projectId": project_id,
        })
        return self.parse(ChatRef, payload)

    async def get_chat(self, chat_id: str) -> Optional[ChatRef]:
        payload = await self.request("GET", f"/chats/{chat_id}", allow_404=True)
        if payload is None:
            logger.warning("v0 chat %s no longer exists", chat_id, extra={"component": "v0"})
            return None
        return self.parse(ChatRef, payload)

    async def find_deployment(self, project_id: str, chat_id: str, version_id: str) -> Optional[DeploymentRef]:
        payload = await self.request("GET", "/deployments", params={
            "projectId": project_id,
            "chatId": chat_id,
            "versionId": version_id,
        })
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            return None
        return self.parse(DeploymentRef, data[0])

    async def create_deployment(self, project_id: str, chat_id: str, version_id: str) -> DeploymentRef:
        payload = await self.request("POST", "/deployments", json={
            "projectId": project_id,
            "chatId": chat_id,
            "versionId": version_id,
        })
        return self.parse(DeploymentRef, payload)

    def _parse_list(self, model, payload):
        items = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise PermanentRemoteError(f"{self.name} returned an unexpected list body for {model.__name__}")
        return [self.parse(model, item) for item in items]

    async def list_projects(self) -> List[ProjectRef]:
        return self._parse_list(ProjectRef, await self.request("GET", "/projects"))

    async def list_chats(self, limit: int = 10, offset: int = 0) -> List[ChatRef]:
        payload = await self.request("GET", "/chats", params={
            "limit": str(limit),
            "offset": str(offset),
            "isFavorite": "false",
        })
        return self._parse_list(ChatRef, payload)
