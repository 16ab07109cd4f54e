"""Prompt templates for each meeting stage.

Every prompt places the discussion first and the instructions after it,
so long histories do not bury the task.
"""

from cabinet.models.message import Message, MessageType, Role

ROLE_FOCUS: dict[str, str] = {
    Role.CRITIC.value: (
        "Speak only to risks, flawed assumptions and ways the proposal could fail."
    ),
    Role.FINANCE.value: (
        "Speak only to costs, benefits and fiscal risk. Include at least one "
        "amount or range."
    ),
    Role.WORKS.value: (
        "Speak only to execution: concrete steps, resources and timeline."
    ),
}
DEFAULT_FOCUS = "Stay strictly within your role."

LENGTH_INSTRUCTION = "Hard limit: keep your statement under {limit} characters."

ISSUE_BRIEF_PROMPT = """Topic: {topic}
{description}
Relevant history from previous meetings (for reference only):
{context}

---

Write a short issue brief that opens this cabinet meeting. State the problem,
what is at stake and the questions the ministers must answer.
{length}
"""

DEPARTMENT_SPEECH_PROMPT = """Topic: {topic}

Issue brief:
{brief}

Discussion so far:
{discussion}

---

Role requirements:
{focus}

Give your full position and recommendation, taking the statements above
into account.
{length}
"""

BRAIN_SYSTEM_PROMPT = """You are BRAIN, the cabinet's chief strategist. You analyze and
steer the discussion.

Your tasks:
1. Analyze the first round of department statements
2. Identify points of consensus and disagreement
3. Find the key question that still needs clarification
4. If necessary, nominate one role to elaborate on it

Reply with JSON only."""

BRAIN_ANALYSIS_PROMPT = """Topic: {topic}

First round of department statements:
{discussion}

---

Analyze the discussion above and return:
```json
{{
  "analysis": "overall analysis of the discussion",
  "consensus": ["point of consensus"],
  "disagreements": ["point of disagreement"],
  "clarification_needed": {{"role": "{roles}", "question": "question for that role"}},
  "should_intervene": true
}}
```
If nothing needs clarification, set "should_intervene" to false and
"clarification_needed" to null.
"""

CLARIFICATION_PROMPT = """Topic: {topic}

Discussion so far:
{discussion}

---

BRAIN asks you: {question}

Role requirements:
{focus}

Answer the question directly and in detail.
{length}
"""

PRIME_SUMMARY_PROMPT = """Topic: {topic}

Discussion so far:
{discussion}
{analysis}
---

Summarize the discussion for the cabinet. Organize it under clear headings:
positions of each minister, points of consensus, open disagreements and the
options on the table.
{length}
"""

FOLLOW_UP_PROMPT = """Topic: {topic}

Prime Minister's summary:
{summary}

{disagreements}

Latest input from the user:
{user_input}

---

Role requirements:
{focus}

Decide whether you need to speak again:
- If you need to add to or respond to the points of disagreement, give your statement.
- If the summary already covers your position, reply with exactly "NO_RESPONSE".

This round is about responding to the disagreements.
{length}
"""

PRIME_DECISION_PROMPT = """Topic: {topic}

Discussion:
{discussion}

---

Make the final decision for the cabinet. Answer using exactly these sections:
Decision: <the decision in one or two sentences>
Reasoning: <why>
Next steps:
- <step>
{length}
"""

ABSTAIN_SIGNALS = (
    "NO_RESPONSE",
    "NO RESPONSE",
    "nothing to add",
    "nothing further to add",
    "no further input",
    "no additional input",
    "summary already covers",
)

BRAIN_FALLBACK_MESSAGE = "Discussion noted, moving to summary."

EXCERPT_CHARS = 150


def focus_for(role: str) -> str:
    return ROLE_FOCUS.get(role, DEFAULT_FOCUS)


def format_discussion(messages: list[Message], excerpt: bool = False) -> str:
    """Render messages as ``ROLE: content`` lines for a prompt.

    Compressed messages are rendered in full since they are already a digest.
    System stage markers are dropped.
    """
    lines = []
    for message in messages:
        if message.type == MessageType.SYSTEM:
            continue
        if message.type == MessageType.COMPRESSED:
            lines.append(message.content)
            continue
        content = message.content
        if excerpt and len(content) > EXCERPT_CHARS:
            content = content[:EXCERPT_CHARS] + "..."
        lines.append(f"{message.role}: {content}")
    return "\n\n".join(lines) or "(none)"


def is_abstention(content: str) -> bool:
    lowered = content.lower()
    return any(signal.lower() in lowered for signal in ABSTAIN_SIGNALS)
