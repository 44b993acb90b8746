"""
References to objects owned by the generation and deployment services
"""
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Optional


class ProjectRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ProjectRef":
        return cls(id=payload["id"], name=payload.get("name"))


class ChatRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    latest_version_id: Optional[str] = None
    web_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ChatRef":
        latest = payload.get("latestVersion") or {}
        return cls(
            id=payload["id"],
            latest_version_id=latest.get("id") if isinstance(latest, dict) else None,
            web_url=payload.get("webUrl"),
        )


class DeploymentRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    inspector_url: Optional[str] = None
    web_url: Optional[str] = None
    api_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "DeploymentRef":
        return cls(
            id=payload["id"],
            inspector_url=payload.get("inspectorUrl"),
            web_url=payload.get("webUrl"),
            api_url=payload.get("apiUrl"),
        )

    def to_result(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "inspectorUrl": self.inspector_url,
            "webUrl": self.web_url,
            "apiUrl": self.api_url,
        }


class DomainResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    verified: bool = False
    project_id: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "DomainResult":
        return cls(
            name=payload["name"],
            verified=bool(payload.get("verified", False)),
            project_id=payload.get("projectId"),
        )
