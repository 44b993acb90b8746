"""
Provisioning pipeline: project -> chat -> deployment -> custom domain.

Every step reuses what the store already knows about the owner before
creating anything remotely, and ids are persisted as soon as they exist so a
retry resumes after the last completed step. No retries happen here.
"""
import logging
import re
from typing import Awaitable, Callable, Optional

from .clients.external import ExternalProvisioningClient
from .config import (
    CHAT_MODEL_CONFIG, CHAT_SYSTEM_PROMPT, DOMAIN_SUFFIX, OWNER_MAX_LENGTH, RESERVED_SUBDOMAINS,
)
from .errors import OwnerValidationError, PermanentRemoteError
from .schemas.provisioning import ProvisioningRequest, ProvisioningResult
from .schemas.remote import ChatRef, DeploymentRef, ProjectRef
from .services.store import ProvisioningStore

logger = logging.getLogger("webprov.orchestrator")

ProgressCallback = Callable[[int], Awaitable[None]]

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Position of the project slug in https://vercel.com/<team>/<project>/<id>
INSPECTOR_SLUG_INDEX = 4


def _sanitize(value: Optional[str], field: str, long_label: str) -> str:
    if not isinstance(value, str):
        raise OwnerValidationError(f"{field} must be a non-empty string")
    sanitized = _NON_ALNUM.sub("", value.lower())
    if not sanitized:
        raise OwnerValidationError(f"{field} must be non-empty after sanitization")
    if len(sanitized) > OWNER_MAX_LENGTH:
        raise OwnerValidationError(
            f"{long_label} too long (max {OWNER_MAX_LENGTH} characters after sanitization)"
        )
    return sanitized


def sanitize_owner(owner: Optional[str]) -> str:
    """Lowercase and keep only [a-z0-9]; at most OWNER_MAX_LENGTH characters."""
    return _sanitize(owner, "owner", "owner name")


def compute_domain_label(owner: str, app_name: Optional[str] = None) -> str:
    sanitized_owner = sanitize_owner(owner)
    if not app_name:
        return sanitized_owner
    sanitized_app = _sanitize(app_name, "app_name", "app_name")
    if sanitized_app in RESERVED_SUBDOMAINS:
        return f"{sanitized_owner}{sanitized_app}"
    return sanitized_app


def inspector_project_slug(inspector_url: Optional[str]) -> str:
    parts = (inspector_url or "").split("/")
    if len(parts) <= INSPECTOR_SLUG_INDEX or not parts[INSPECTOR_SLUG_INDEX]:
        raise PermanentRemoteError(f"cannot extract project from inspector url: {inspector_url!r}")
    return parts[INSPECTOR_SLUG_INDEX]


async def _noop_progress(_: int) -> None:
    return None


class Orchestrator:
    def __init__(
        self,
        store: ProvisioningStore,
        client: ExternalProvisioningClient,
        domain_suffix: str = DOMAIN_SUFFIX,
    ):
        self.store = store
        self.client = client
        self.domain_suffix = domain_suffix

    async def run(self, request: ProvisioningRequest, progress: Optional[ProgressCallback] = None) -> ProvisioningResult:
        report = progress or _noop_progress
        owner = sanitize_owner(request.owner)
        label = compute_domain_label(request.owner, request.app_name)

        project = await self.ensure_project(owner, request.description)
        await report(10)

        chat = await self.ensure_chat(owner, project.id, request.message)
        await report(30)

        deployment = await self.ensure_deployment(project.id, chat)
        await report(50)

        custom_domain = f"{label}.{self.domain_suffix}"
        await self.attach_domain(owner, custom_domain, deployment)
        await report(90)

        url = f"https://{custom_domain}"
        logger.info("Provisioning finished for %s", owner, extra={
            "component": "orchestrator",
            "owner": owner,
            "domain": custom_domain,
        })
        return ProvisioningResult(
            project={"id": project.id, "name": project.name},
            chat={"id": chat.id, "versionId": chat.latest_version_id},
            deployment=deployment.to_result(),
            urls={"customDomain": url, "primaryUrl": url},
            success=True,
            message=f"Website successfully deployed and available at: {url}",
        )

    async def ensure_project(self, owner: str, description: str) -> ProjectRef:
        project_name = f"project_{owner}"
        record = self.store.find_by_owner(owner)
        if record is not None:
            existing = await self.client.get_project_by_id(record.project_id)
            if existing is not None:
                logger.info("Reusing project %s", existing.id, extra={"component": "orchestrator", "owner": owner})
                return existing

        project = await self.client.ensure_project(project_name, description)
        if not project.name:
            project = project.model_copy(update={"name": project_name})
        self.store.upsert_project(owner, project_name, project.id)
        return project

    async def ensure_chat(self, owner: str, project_id: str, message: str) -> ChatRef:
        record = self.store.find_by_owner(owner)
        if record is not None and record.chat_id:
            existing = await self.client.get_chat_by_id(record.chat_id)
            if existing is not None:
                if not existing.latest_version_id:
                    raise PermanentRemoteError("chat has no generated version")
                logger.info("Reusing chat %s", existing.id, extra={"component": "orchestrator", "owner": owner})
                return existing

        chat = await self.client.ensure_chat(project_id, CHAT_SYSTEM_PROMPT, message, dict(CHAT_MODEL_CONFIG))
        self.store.upsert_chat(owner, chat.id)
        return chat

    async def ensure_deployment(self, project_id: str, chat: ChatRef) -> DeploymentRef:
        existing = await self.client.find_existing_deployment(project_id, chat.id, chat.latest_version_id)
        if existing is not None:
            logger.info("Using existing deployment: %s", existing.id, extra={"component": "orchestrator"})
            return existing
        logger.info("Creating new deployment", extra={"component": "orchestrator", "project_id": project_id})
        return await self.client.create_deployment(project_id, chat.id, chat.latest_version_id)

    async def attach_domain(self, owner: str, domain: str, deployment: DeploymentRef) -> None:
        record = self.store.find_by_owner(owner)
        if record is not None and record.custom_domain == domain and record.deployment_id == deployment.id:
            logger.info("Domain %s already attached", domain, extra={"component": "orchestrator", "owner": owner})
            return

        slug = inspector_project_slug(deployment.inspector_url)
        result = await self.client.attach_domain(domain, deployment.id, slug)
        if not result:
            raise PermanentRemoteError("failed to add custom domain")
        self.store.update_deployment(owner, deployment.id, domain)
