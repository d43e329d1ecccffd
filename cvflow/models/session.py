"""
Pydantic models for the flow session HTTP contracts.
"""

from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, model_validator


class CreateSessionRequest(BaseModel):
    """Request model for starting a flow session"""
    flow_name: Optional[str] = Field(default=None, description="Name of a built-in flow")
    flow: Optional[Dict[str, Any]] = Field(default=None, description="Inline flow document from the designer")
    initial_variables: Dict[str, Any] = Field(default_factory=dict, description="Variables known before the first question")

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "CreateSessionRequest":
        if (self.flow_name is None) == (self.flow is None):
            raise ValueError("Provide exactly one of flow_name or flow")
        return self


class AnswerRequest(BaseModel):
    """Request model for answering the pending question"""
    value: str = Field(..., description="Free-text answer")


class OptionRequest(BaseModel):
    """Request model for selecting one of the pending question's options"""
    value: str = Field(..., description="Option value")


class SessionResponse(BaseModel):
    """Session snapshot plus the events produced by the request"""
    session_id: str
    flow_id: Optional[str] = None
    state: str
    current_node_id: Optional[str] = None
    step: int = 0
    variables: Dict[str, str] = Field(default_factory=dict)
    pending_question: Optional[Dict[str, Any]] = None
    early_termination: bool = False
    error: Optional[Dict[str, Any]] = None
    transcript: List[Dict[str, Any]] = Field(default_factory=list)
    events: List[Dict[str, Any]] = Field(default_factory=list)


class ValidationReport(BaseModel):
    """Result of validating a flow document"""
    valid: bool
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    sessions: Dict[str, Any]
