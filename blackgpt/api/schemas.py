"""
Request and response models for the HTTP surface.
JSON keys are camelCase; Python attributes stay snake_case.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from blackgpt.models.signals import SignalStatus, SourceType
from blackgpt.utils.constants import DEMO_USER_ID

class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

def _actor_to_str(value: Any) -> Any:
    # Demo clients send numeric user ids
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value

# ========== REQUESTS ==========
class SignalUploadRequest(CamelModel):
    script_name: str
    gist_text: str
    provenance_tags: List[str] = Field(default_factory=list)
    source_type: SourceType = SourceType.MANUAL_UPLOAD
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    uploader_id: str = DEMO_USER_ID
    confidence_score: Optional[float] = None

    @field_validator('uploader_id', mode='before')
    @classmethod
    def coerce_uploader(cls, value):
        return _actor_to_str(value)

class VerifyRequest(CamelModel):
    action: str
    reviewer_id: str = DEMO_USER_ID
    notes: Optional[str] = None

    @field_validator('reviewer_id', mode='before')
    @classmethod
    def coerce_reviewer(cls, value):
        return _actor_to_str(value)

class ResearchRequest(CamelModel):
    initiated_by: str = DEMO_USER_ID

    @field_validator('initiated_by', mode='before')
    @classmethod
    def coerce_initiator(cls, value):
        return _actor_to_str(value)

# ========== RESPONSES ==========
class AuditResponse(CamelModel):
    id: int
    signal_id: str
    actor: str
    action: str
    notes: Optional[str] = None
    timestamp: datetime
    event_hash: str
    previous_hash: Optional[str] = None

class CorrelationJobResponse(CamelModel):
    job_id: str
    signal_id: str
    status: str
    initiated_by: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    keywords: Optional[List[str]] = None
    result_gist: Optional[str] = None
    correlation_confidence: Optional[float] = None
    contradiction_confidence: Optional[float] = None
    sources_queried: Optional[List[str]] = None
    raw_results: Optional[Any] = None
    model_used: Optional[str] = None
    error_message: Optional[str] = None

class SignalResponse(CamelModel):
    id: str = Field(validation_alias='signal_id')
    signal_id: str
    script_name: str
    date_from: datetime
    date_to: datetime
    gist_text: str
    provenance_tags: List[str]
    source_type: SourceType
    confidence_score: float
    status: SignalStatus
    requires_attention: bool
    contradiction_flag: bool
    contradiction_note: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime
    last_correlated_at: Optional[datetime] = None

class SignalDetailResponse(SignalResponse):
    audits: List[AuditResponse] = Field(default_factory=list)
    correlation_jobs: List[CorrelationJobResponse] = Field(default_factory=list)

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

class SignalListResponse(CamelModel):
    signals: List[SignalResponse]
    pagination: Pagination

class ContradictionResponse(CamelModel):
    flag: bool
    confidence: float
    note: str
    requires_review: bool

class ResearchResponse(CamelModel):
    job: CorrelationJobResponse
    summary: str
    contradiction: ContradictionResponse
    sources: List[str]
    confidence: float

class AuditChainResponse(CamelModel):
    signal_id: str
    entries: int
    valid: bool

class ErrorBody(CamelModel):
    category: str
    message: str
    job_id: Optional[str] = None
    traceback: Optional[List[str]] = None

class ErrorResponse(CamelModel):
    error: ErrorBody
