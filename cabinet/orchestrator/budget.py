"""Token budget accounting and degradation thresholds."""

import math
import re

from cabinet.models.meeting import Meeting
from cabinet.orchestrator.stages import StageConfig

FORCE_DECISION_RATIO = 1.0
SKIP_RATIO = 0.9

# CJK ideographs, kana and hangul count as dense script
_DENSE_SCRIPT = re.compile(
    r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff]"
)


def estimate_tokens(text: str) -> int:
    """Estimate the token cost of text from its character makeup.

    Dense-script characters cost one token per 2 characters, all other
    characters one token per 4.

    Args:
        text: Text to estimate

    Returns:
        Estimated token count, rounded up
    """
    if not text:
        return 0
    dense = len(_DENSE_SCRIPT.findall(text))
    other = len(text) - dense
    return math.ceil(dense / 2 + other / 4)


class BudgetLedger:
    """Cumulative token usage against a meeting's fixed ceiling.

    The ledger reads and writes ``meeting.usage`` directly so the meeting
    record stays the single source of truth for consumption.
    """

    def __init__(self, meeting: Meeting):
        self._meeting = meeting

    @property
    def budget(self) -> int:
        return self._meeting.budget

    @property
    def usage(self) -> int:
        return self._meeting.usage

    def record(self, tokens: int) -> int:
        """Add tokens to usage. Every call counts; negatives count as zero.

        Returns:
            Usage after recording
        """
        self._meeting.usage += max(0, int(tokens))
        return self._meeting.usage

    def ratio(self) -> float:
        return self._meeting.usage / self._meeting.budget

    def should_force_decision(self) -> bool:
        return self.ratio() >= FORCE_DECISION_RATIO

    def should_skip(self, config: StageConfig) -> bool:
        return config.can_degrade and self.ratio() >= SKIP_RATIO

    def remaining(self) -> int:
        return max(0, self._meeting.budget - self._meeting.usage)
