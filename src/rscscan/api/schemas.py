# src/rscscan/api/schemas.py
# Pydantic models for scan requests and responses
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool

Confidence = Literal['high', 'medium', 'low']
JobStatus = Literal['pending', 'running', 'complete', 'error']


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ScanRequest(CamelModel):
    url: str = Field(..., min_length=1, max_length=2048, description="Origin or page URL to scan")
    authorization_confirmed: StrictBool = Field(
        ..., alias="authorizationConfirmed",
        description="Submitter confirms they are authorized to test the target; must be true",
    )
    website: Optional[str] = Field(None, description="Honeypot field, must be left empty")


class ScanResultBody(CamelModel):
    vulnerable: Optional[bool] = None
    confidence: Optional[Confidence] = None
    uses_rsc: Optional[bool] = Field(None, alias="usesRsc")
    framework: Optional[str] = None
    detected_version: Optional[str] = Field(None, alias="detectedVersion")
    http_status: Optional[int] = Field(None, alias="httpStatus")
    error_signature: Optional[str] = Field(None, alias="errorSignature")
    duration_ms: Optional[int] = Field(None, alias="durationMs")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    message: str


class ScanJobResponse(CamelModel):
    id: str
    status: JobStatus
    url: str
    created_at: datetime = Field(..., alias="createdAt")
    result: Optional[ScanResultBody] = None
    error: Optional[str] = None
    cached: Optional[bool] = None


class PromptResponse(CamelModel):
    scan_id: str = Field(..., alias="scanId")
    prompt: str
    short_prompt: str = Field(..., alias="shortPrompt")
    manual_steps: List[str] = Field(..., alias="manualSteps")
