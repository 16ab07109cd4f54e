"""Persona system prompts for cabinet roles."""

from typing import Protocol, runtime_checkable

from cabinet.models.message import Role

ROLE_TITLES: dict[str, str] = {
    Role.PRIME.value: "Prime Minister",
    Role.BRAIN.value: "Chief Strategist",
    Role.CRITIC.value: "Critic",
    Role.FINANCE.value: "Minister of Finance",
    Role.WORKS.value: "Minister of Works",
    Role.CLERK.value: "Clerk",
}

_BUILTIN_PERSONAS: dict[str, str] = {
    Role.PRIME.value: (
        "You are the Prime Minister chairing a cabinet meeting. You frame the "
        "issue, keep the discussion on track and take the final decision. Be "
        "decisive and concrete, and weigh every minister's view."
    ),
    Role.BRAIN.value: (
        "You are the cabinet's chief strategist. You do not advocate; you "
        "synthesize. Identify where ministers agree, where they disagree and "
        "which single question would most reduce uncertainty."
    ),
    Role.CRITIC.value: (
        "You are the cabinet's critic. Your job is to find risks, flawed "
        "assumptions and failure modes in every proposal. Be specific and "
        "constructive, never dismissive."
    ),
    Role.FINANCE.value: (
        "You are the Minister of Finance. You judge every proposal by cost, "
        "benefit and fiscal risk. Give numbers or ranges whenever you can."
    ),
    Role.WORKS.value: (
        "You are the Minister of Works. You care about execution: concrete "
        "steps, resources, owners and timelines. Flag anything that cannot "
        "be delivered."
    ),
    Role.CLERK.value: (
        "You are the cabinet clerk. You record proceedings accurately and "
        "neutrally."
    ),
}


@runtime_checkable
class PersonaProvider(Protocol):
    """Source of role system prompts."""

    def get_system_prompt(self, role: str) -> str | None:
        """Return the system prompt for ``role``, or None if unknown."""
        ...


class DefaultPersonaProvider:
    """Built-in cabinet personas with optional per-role overrides."""

    def __init__(self, overrides: dict[str, str] | None = None):
        self._prompts = dict(_BUILTIN_PERSONAS)
        for role, prompt in (overrides or {}).items():
            self._prompts[role.upper()] = prompt

    def get_system_prompt(self, role: str) -> str | None:
        return self._prompts.get(role.upper())

    @property
    def roles(self) -> list[str]:
        return list(self._prompts)
