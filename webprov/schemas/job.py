from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, Literal, Optional

JobStatus = Literal["queued", "active", "stalled", "completed", "failed", "not_found"]


class JobSubmitted(BaseModel):
    jobId: str
    status: str = "queued"


class JobStatusOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    jobId: Optional[str] = None
    status: JobStatus
    progress: int = 0
    attempts: Optional[int] = None
    createdAt: Optional[float] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class QueueStats(BaseModel):
    queued: int = 0
    active: int = 0
    stalled: int = 0
    completed: int = 0
    failed: int = 0


class WebhookEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    jobId: str
    status: Literal["completed", "failed"]
    result: Optional[Dict[str, Any]] = Field(None)
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Body posted to the webhook endpoint: result for completed, error for failed"""
        payload: Dict[str, Any] = {"jobId": self.jobId, "status": self.status}
        if self.status == "completed":
            payload["result"] = self.result
        else:
            payload["error"] = self.error or "Unknown error"
        return payload
