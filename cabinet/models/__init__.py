"""Canonical data models for Cyber Cabinet.

This module exports all domain models used throughout the application:
- BaseEntity: Base class with id, timestamps
- Meeting: A deliberation with budget, messages and artifacts
- Message: One transcript entry
- Artifacts: Brief, speaking plan, analysis, summary, decision
- MemoryRecord: Durable records read by future meetings
"""

from cabinet.models.artifacts import (
    Artifacts,
    BrainAnalysis,
    BrainIntervention,
    ClarificationRequest,
    ContextPackageRef,
    FinalDecision,
    IssueBrief,
    SpeakPlan,
    Summary,
)
from cabinet.models.base import BaseEntity
from cabinet.models.meeting import DEFAULT_ROLES, Degradation, Meeting, MeetingStatus
from cabinet.models.memory import (
    ContextItem,
    ContextPackage,
    MemoryQuery,
    MemoryRecord,
    MemoryType,
    RetrievalResult,
    SummaryRefs,
)
from cabinet.models.message import Message, MessageType, Role, system_message

__all__ = [
    # Base
    "BaseEntity",
    # Meeting
    "Meeting",
    "MeetingStatus",
    "Degradation",
    "DEFAULT_ROLES",
    # Messages
    "Message",
    "MessageType",
    "Role",
    "system_message",
    # Artifacts
    "Artifacts",
    "IssueBrief",
    "SpeakPlan",
    "BrainAnalysis",
    "BrainIntervention",
    "ClarificationRequest",
    "Summary",
    "FinalDecision",
    "ContextPackageRef",
    # Memory
    "MemoryType",
    "MemoryRecord",
    "ContextItem",
    "MemoryQuery",
    "RetrievalResult",
    "ContextPackage",
    "SummaryRefs",
]
