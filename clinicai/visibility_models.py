"""
Visibility Models for the multi-provider scan pipeline.
Defines the data structures every pipeline stage passes along.
"""

from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field


class ScanRequest(BaseModel):
    """Input for one visibility analysis run."""
    domain: str = ""
    query: str = ""
    city: str = ""
    api_key_provider_a: str = ""
    api_key_provider_b: str = ""

    def missing_fields(self) -> List[str]:
        """Names of required fields that are empty or whitespace only."""
        return [
            name for name in (
                "domain", "query", "city", "api_key_provider_a", "api_key_provider_b"
            )
            if not (getattr(self, name) or "").strip()
        ]


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ProviderResponse(BaseModel):
    """Result of a single chat-completion call to one provider."""
    provider: str
    model: str
    raw_text: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None


class ResponseBody(BaseModel):
    content: str = ""
    model: Optional[str] = None
    usage: Optional[TokenUsage] = None


class RequestLog(BaseModel):
    """One external call made during a pipeline run, successful or not."""
    provider: str
    model: str
    role: Literal["scanner", "parser"]
    prompt: str
    request_body: Dict[str, Any] = Field(default_factory=dict)
    response_body: Optional[ResponseBody] = None
    error: Optional[str] = None


class ParsedVisibility(BaseModel):
    """Structured visibility data extracted from one provider answer."""
    domain_present: bool = False
    rank: Optional[int] = Field(default=None, ge=1, le=10)
    competitors: List[str] = Field(default_factory=list)
    raw_analysis: str = ""
    trust_score: int = Field(default=0, ge=0, le=10)
    local_score: int = Field(default=0, ge=0, le=10)


class MergedVisibilityResult(BaseModel):
    """Best parsed result across providers with competitors unioned."""
    visible: bool
    position: Optional[int] = None
    competitors: List[str] = Field(default_factory=list)
    trust_score: int = 0
    local_score: int = 0
    raw_analysis: str = ""
    winning_provider: Optional[str] = None


class CompetitorDetail(BaseModel):
    rank: int
    name: str
    url: Optional[str] = None
    strengths: Optional[str] = None


class ClinicAIScoreComponents(BaseModel):
    """Subscores (0-100) fed into the ClinicAI Score."""
    visibility: float = 0
    tech: float = 0
    content: float = 0
    eeat: float = 0
    local: float = 0


class ClinicAIScoreResult(BaseModel):
    score: float
    components: ClinicAIScoreComponents
    weights: Dict[str, float]


class AuditSignals(BaseModel):
    """Subscores supplied by the technical/content audit collaborators."""
    tech_optimization: Optional[float] = None
    content_optimization: Optional[float] = None
    eeat_signals: Optional[float] = None
    local_signals: Optional[float] = None


class ServiceAnalysisResult(BaseModel):
    """Final output of a visibility analysis run."""
    query: str
    location: str
    found_url: Optional[str] = None
    position: Optional[int] = None
    total_results: int = 0
    ai_engine: str
    competitors: List[CompetitorDetail] = Field(default_factory=list)
    recommendation_text: str
    request_logs: List[RequestLog] = Field(default_factory=list)
    visible: bool = False
    trust_score: int = 0
    local_score: int = 0
    winning_provider: Optional[str] = None
    clinic_ai_score: Optional[ClinicAIScoreResult] = None
