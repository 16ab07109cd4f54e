"""Named artifacts produced while a meeting progresses through its stages."""

from datetime import datetime

from pydantic import BaseModel, Field

from cabinet.models.base import utc_now


class IssueBrief(BaseModel):
    """Opening framing of the topic by PRIME."""

    content: str
    context_tokens: int = Field(default=0, ge=0)


class SpeakPlan(BaseModel):
    """Speaking order for the department round."""

    order: list[str] = Field(default_factory=list)


class ClarificationRequest(BaseModel):
    """A targeted follow-up question nominated by BRAIN."""

    role: str
    question: str


class BrainAnalysis(BaseModel):
    """Structured synthesis of the discussion so far."""

    analysis: str = ""
    consensus: list[str] = Field(default_factory=list)
    disagreements: list[str] = Field(default_factory=list)
    clarification_needed: ClarificationRequest | None = None
    should_intervene: bool = False

    @classmethod
    def neutral(cls) -> "BrainAnalysis":
        """Placeholder analysis used when BRAIN output cannot be parsed."""
        return cls(analysis="failed")


class BrainIntervention(BaseModel):
    """Record of one clarification exchange."""

    target_role: str
    question: str
    response: str
    timestamp: datetime = Field(default_factory=utc_now)


class Summary(BaseModel):
    """PRIME's structured summary after the intervention stage."""

    content: str


class FinalDecision(BaseModel):
    """PRIME's decision, split into its sections."""

    decision: str
    reasoning: str = ""
    next_steps: list[str] = Field(default_factory=list)


class ContextPackageRef(BaseModel):
    """Pointer to the context package injected at the opening stage."""

    id: str
    tokens: int = Field(default=0, ge=0)
    item_count: int = Field(default=0, ge=0)


class Artifacts(BaseModel):
    """Map of named meeting artifacts."""

    issue_brief: IssueBrief | None = None
    speak_plan: SpeakPlan | None = None
    brain_analysis: BrainAnalysis | None = None
    brain_interventions: list[BrainIntervention] = Field(default_factory=list)
    summary: Summary | None = None
    final_decision: FinalDecision | None = None
    context_package: ContextPackageRef | None = None
