from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class ProvisioningRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., max_length=256)
    message: str = Field(..., description="Free-text generation prompt")
    description: str = ""
    app_name: Optional[str] = Field(None, max_length=256, description="Domain name hint")


class ProvisioningResult(BaseModel):
    project: Dict[str, Any]
    chat: Dict[str, Any]
    deployment: Dict[str, Any]
    urls: Dict[str, str]
    success: bool = True
    message: str
