"""Tests for stage flow and configuration."""

import pytest

from cabinet.orchestrator.stages import (
    STAGE_CONFIGS,
    STAGE_FLOW,
    MeetingStage,
    get_stage_config,
    next_stage,
)


def test_forward_flow_order() -> None:
    stage = MeetingStage.ISSUE_BRIEF
    visited = [stage]
    while not stage.is_terminal:
        stage = next_stage(stage)
        visited.append(stage)
    assert visited == list(STAGE_FLOW)


def test_terminal_stages_stay_put() -> None:
    assert next_stage(MeetingStage.COMPLETED) == MeetingStage.COMPLETED
    assert next_stage(MeetingStage.FAILED) == MeetingStage.FAILED
    assert MeetingStage.FAILED.is_terminal
    assert not MeetingStage.PRIME_DECISION.is_terminal


def test_only_intervention_and_follow_up_degrade() -> None:
    degradable = {stage for stage, config in STAGE_CONFIGS.items() if config.can_degrade}
    assert degradable == {
        MeetingStage.BRAIN_INTERVENTION,
        MeetingStage.FOLLOW_UP_DISCUSSION,
    }


def test_stage_ceilings() -> None:
    assert get_stage_config(MeetingStage.ISSUE_BRIEF).max_tokens == 1000
    assert get_stage_config(MeetingStage.DEPARTMENT_SPEECHES).max_tokens == 4000
    assert get_stage_config(MeetingStage.FOLLOW_UP_DISCUSSION).max_tokens == 3000


def test_terminal_stage_has_no_config() -> None:
    with pytest.raises(KeyError):
        get_stage_config(MeetingStage.COMPLETED)


def test_configs_are_frozen() -> None:
    config = get_stage_config(MeetingStage.PRIME_SUMMARY)
    with pytest.raises(Exception):
        config.max_tokens = 10  # type: ignore[misc]
