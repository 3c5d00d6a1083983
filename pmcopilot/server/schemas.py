"""
Pydantic models for API request/response schemas.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# PRD Endpoint Schemas
# =============================================================================


class ConversationMessage(BaseModel):
    """One prior turn of an interactive PRD session."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: Optional[str] = None


class GenerateRequest(BaseModel):
    """Request body for POST /prds/{prd_id}/generate."""

    prompt: str = Field(..., description="Current user input")
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    tone: Literal["professional", "technical", "executive", "casual"] = "professional"
    length: str = Field("standard", description="Level of detail")
    model: Optional[str] = Field(None, description="Model identifier")
    template_id: Optional[str] = Field(None, description="Template whose sections to follow")


class CritiqueRequest(BaseModel):
    """Request body for POST /prds/{prd_id}/critique."""

    existing_content: str = Field(
        "", description="PRD content to review; defaults to the saved PRD"
    )
    include_suggestions: bool = True
    model: Optional[str] = Field(None, description="Model identifier")


class QuestionRequest(BaseModel):
    """Request body for POST /prds/{prd_id}/question."""

    question: str = Field(..., description="Question about the PRD")
    prd_content: str = Field(
        "", description="PRD content the question refers to; defaults to the saved PRD"
    )
    context: str = Field("", description="Additional context")
    model: Optional[str] = Field(None, description="Model identifier")


class TraceData(BaseModel):
    """Identifiers for submitting feedback on a response."""

    trace_id: str
    user_id: Optional[str] = None
    session_id: str


class UsageInfo(BaseModel):
    """Token usage information."""

    input_tokens: int
    output_tokens: int
    total_tokens: int


class PRDResponse(BaseModel):
    """Response body for the PRD endpoints."""

    content: str = Field(..., description="Model output")
    model_used: str
    generation_time: float = Field(..., description="Seconds spent on the request")
    usage: UsageInfo
    trace: Optional[TraceData] = Field(
        None, description="Present only when tracing succeeded"
    )
    tracing_degraded: bool = Field(
        False, description="Some tracing calls were dropped after retries"
    )
    request_id: str

# =============================================================================
# Stored PRD Schemas
# =============================================================================


class PRDCreate(BaseModel):
    """Request body for POST /prds."""

    title: str = Field(..., min_length=1)
    content: str = ""
    template_id: Optional[str] = None


class PRDUpdate(BaseModel):
    """Request body for PUT /prds/{prd_id}; omitted fields are kept."""

    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = None
    template_id: Optional[str] = None


class PRDRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    content: str
    template_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SessionSaveRequest(BaseModel):
    """Request body for POST /prds/{prd_id}/session."""

    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


class SessionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    prd_id: str
    conversation_history: List[Dict[str, Any]]
    settings: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class SessionSaveResponse(BaseModel):
    success: bool
    id: str


# =============================================================================
# Template Schemas
# =============================================================================


class TemplateSectionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    name: str
    description: str
    placeholder: Optional[str] = None
    required: bool
    order: int = Field(..., validation_alias="order_index")


class TemplateRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    category: str
    is_custom: bool
    sections: List[TemplateSectionRecord]
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Provider Schemas
# =============================================================================


class ModelCost(BaseModel):
    input: float
    output: float


class ModelInfo(BaseModel):
    id: str
    name: str
    description: str
    max_tokens: int
    supports_streaming: bool
    cost_per_1m_tokens: ModelCost


class ProviderTestRequest(BaseModel):
    """Request body for POST /test-provider."""

    model: Optional[str] = Field(None, description="Model identifier")


class ProviderTestResponse(BaseModel):
    success: bool
    provider: str
    model: str
    response_time: float = Field(..., description="Milliseconds until the reply")
    test_content: Optional[str] = None
    error: Optional[str] = None



# =============================================================================
# Feedback Endpoint Schemas
# =============================================================================


class FeedbackRequest(BaseModel):
    """Request body for POST /feedback."""

    trace_id: str = Field(..., min_length=1)
    generation_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5, description="User rating from 1 to 5")
    comment: Optional[str] = None


class FeedbackResponse(BaseModel):
    """Response body for POST /feedback."""

    success: bool
    message: str


# =============================================================================
# Health Endpoint Schemas
# =============================================================================


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")


class ObservabilityConfiguration(BaseModel):
    base_url: str
    has_public_key: bool
    has_secret_key: bool


class ObservabilityHealthResponse(BaseModel):
    """Response body for GET /health/observability."""

    status: Literal["healthy", "unhealthy"]
    enabled: bool
    healthy: bool
    last_checked_utc: Optional[str] = None
    configuration: ObservabilityConfiguration
    timestamp: str


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorDetail(BaseModel):
    """Error detail."""

    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
