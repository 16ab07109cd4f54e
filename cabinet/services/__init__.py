"""Collaborator capabilities consumed by the orchestrator.

Provides:
- CompletionClient / AnthropicCompletionClient: text generation
- PersonaProvider / DefaultPersonaProvider: role system prompts
- Notifier / EventBusNotifier: best-effort stage progress delivery
"""

from cabinet.services.llm_client import (
    AnthropicCompletionClient,
    CompletionClient,
    CompletionResult,
    TokenUsage,
)
from cabinet.services.notifier import EventBusNotifier, Notifier
from cabinet.services.personas import DefaultPersonaProvider, PersonaProvider

__all__ = [
    "CompletionClient",
    "AnthropicCompletionClient",
    "CompletionResult",
    "TokenUsage",
    "PersonaProvider",
    "DefaultPersonaProvider",
    "Notifier",
    "EventBusNotifier",
]
