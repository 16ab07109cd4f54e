"""Meeting stages and their fixed configuration."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cabinet.models.message import Role


class MeetingStage(str, Enum):
    """States of the meeting state machine, in forward order."""

    ISSUE_BRIEF = "ISSUE_BRIEF"
    DEPARTMENT_SPEECHES = "DEPARTMENT_SPEECHES"
    BRAIN_INTERVENTION = "BRAIN_INTERVENTION"
    PRIME_SUMMARY = "PRIME_SUMMARY"
    FOLLOW_UP_DISCUSSION = "FOLLOW_UP_DISCUSSION"
    PRIME_DECISION = "PRIME_DECISION"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (MeetingStage.COMPLETED, MeetingStage.FAILED)


class StageConfig(BaseModel):
    """Per-stage role set, token ceiling and skippability."""

    model_config = ConfigDict(frozen=True)

    stage: MeetingStage
    required_roles: tuple[str, ...] = Field(default_factory=tuple)
    max_tokens: int = Field(ge=1, description="Per-call token ceiling for the stage")
    can_degrade: bool = Field(
        default=False,
        description="Whether the stage may be skipped under budget pressure",
    )


STAGE_ENTRY_PREFIX = "Entering stage: "

STAGE_FLOW: tuple[MeetingStage, ...] = (
    MeetingStage.ISSUE_BRIEF,
    MeetingStage.DEPARTMENT_SPEECHES,
    MeetingStage.BRAIN_INTERVENTION,
    MeetingStage.PRIME_SUMMARY,
    MeetingStage.FOLLOW_UP_DISCUSSION,
    MeetingStage.PRIME_DECISION,
    MeetingStage.COMPLETED,
)

_DEPARTMENTS = (Role.CRITIC.value, Role.FINANCE.value, Role.WORKS.value)

STAGE_CONFIGS: dict[MeetingStage, StageConfig] = {
    MeetingStage.ISSUE_BRIEF: StageConfig(
        stage=MeetingStage.ISSUE_BRIEF,
        required_roles=(Role.PRIME.value,),
        max_tokens=1000,
    ),
    MeetingStage.DEPARTMENT_SPEECHES: StageConfig(
        stage=MeetingStage.DEPARTMENT_SPEECHES,
        required_roles=_DEPARTMENTS,
        max_tokens=4000,
    ),
    MeetingStage.BRAIN_INTERVENTION: StageConfig(
        stage=MeetingStage.BRAIN_INTERVENTION,
        required_roles=(Role.BRAIN.value,),
        max_tokens=1500,
        can_degrade=True,
    ),
    MeetingStage.PRIME_SUMMARY: StageConfig(
        stage=MeetingStage.PRIME_SUMMARY,
        required_roles=(Role.PRIME.value,),
        max_tokens=1500,
    ),
    MeetingStage.FOLLOW_UP_DISCUSSION: StageConfig(
        stage=MeetingStage.FOLLOW_UP_DISCUSSION,
        required_roles=_DEPARTMENTS,
        max_tokens=3000,
        can_degrade=True,
    ),
    MeetingStage.PRIME_DECISION: StageConfig(
        stage=MeetingStage.PRIME_DECISION,
        required_roles=(Role.PRIME.value,),
        max_tokens=1500,
    ),
}


def get_stage_config(stage: MeetingStage) -> StageConfig:
    """Look up the configuration of a non-terminal stage.

    Raises:
        KeyError: If the stage is terminal
    """
    return STAGE_CONFIGS[stage]


def next_stage(stage: MeetingStage) -> MeetingStage:
    """Return the stage that follows ``stage`` in the forward flow."""
    if stage.is_terminal:
        return stage
    return STAGE_FLOW[STAGE_FLOW.index(stage) + 1]
