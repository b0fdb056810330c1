# assessment/models.py

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WireModel(BaseModel):
    """
    Base for every JSON shape exchanged with the form UI.
    Python attributes are snake_case, the wire keys are camelCase aliases.
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Profile(WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    full_name: str = Field(default="", alias="fullName")
    job_title: str = Field(default="", alias="jobTitle")
    company_name: str = Field(default="", alias="companyName")
    company_size: str = Field(default="", alias="companySize")
    industry: str = ""
    email: str = ""

    @field_validator("full_name", "job_title", "company_name", "company_size", "industry", "email", mode="before")
    @classmethod
    def _non_strings_to_empty(cls, value):
        return value if isinstance(value, str) else ""


class Scores(WireModel):
    dimensions: Dict[str, float] = Field(default_factory=dict)
    overall: float


class MaturityTier(WireModel):
    name: str
    level: int


class SwotAnalysis(WireModel):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)


class TitledItem(WireModel):
    title: str = ""
    content: str = ""


class Analysis(WireModel):
    summary: str
    peer_comparison: str = Field(alias="peerComparison")
    swot: SwotAnalysis = Field(default_factory=SwotAnalysis)
    recommendations: List[TitledItem] = Field(default_factory=list)
    next_steps: List[TitledItem] = Field(default_factory=list, alias="nextSteps")


class Fidelity(str, Enum):
    STRUCTURED = "structured"
    RECOVERED_FROM_TEXT = "recovered_from_text"


class NormalizedAnalysis(BaseModel):
    """
    Tagged normalizer outcome. The third case (unparseable) is raised as ParseError.
    """

    analysis: Analysis
    fidelity: Fidelity


class StoredResult(WireModel):
    id: str
    profile: Profile
    scores: Scores
    tier: MaturityTier
    analysis: Analysis
    created_at: datetime = Field(alias="createdAt")


class AnalysisRequest(BaseModel):
    """Body of POST /api/generate-analysis. Presence is checked by the handler."""

    userProfile: Optional[Dict[str, Any]] = None
    scores: Optional[Dict[str, Any]] = None
    maturityTier: Optional[Dict[str, Any]] = None


class SaveResultsRequest(BaseModel):
    userProfile: Optional[Dict[str, Any]] = None
    results: Optional[Dict[str, Any]] = None


class SubmitAssessmentRequest(BaseModel):
    sessionId: Optional[str] = None
    userProfile: Optional[Dict[str, Any]] = None
    answers: Optional[Dict[str, Any]] = None
