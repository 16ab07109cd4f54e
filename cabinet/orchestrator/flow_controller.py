"""Meeting stage state machine.

Each call to ``FlowController.execute_stage`` drives exactly one stage
transition. Budget policy is checked before any work is done: an exhausted
budget jumps straight to the decision, a nearly exhausted one skips stages
that may degrade.
"""

import json
import random
import re
from dataclasses import dataclass, field

import structlog
from pydantic import BaseModel, ValidationError

from cabinet.config import settings
from cabinet.errors import RecordStoreError
from cabinet.memory.compressor import ContextCompressor
from cabinet.memory.retriever import ContextRetriever
from cabinet.models.artifacts import (
    BrainAnalysis,
    BrainIntervention,
    ClarificationRequest,
    ContextPackageRef,
    FinalDecision,
    IssueBrief,
    SpeakPlan,
    Summary,
)
from cabinet.models.meeting import DEFAULT_ROLES, Degradation, Meeting
from cabinet.models.memory import RETRIEVAL_SCAN_ORDER, MemoryQuery
from cabinet.models.message import Message, MessageType, Role, system_message
from cabinet.orchestrator import prompts
from cabinet.orchestrator.budget import BudgetLedger, estimate_tokens
from cabinet.orchestrator.scheduler import CompletionScheduler
from cabinet.orchestrator.stages import (
    STAGE_ENTRY_PREFIX,
    MeetingStage,
    StageConfig,
    get_stage_config,
    next_stage,
)
from cabinet.services.personas import PersonaProvider

logger = structlog.get_logger()

NON_DISCUSSION_ROLES = {
    Role.PRIME.value,
    Role.BRAIN.value,
    Role.CLERK.value,
    Role.SYSTEM.value,
    Role.USER.value,
}
FALLBACK_DISCUSSION_ROLES = [Role.CRITIC.value, Role.FINANCE.value, Role.WORKS.value]

# (temperature, max_tokens) per kind of call; max_tokens is further capped
# by the stage ceiling
CALL_SETTINGS: dict[str, tuple[float, int]] = {
    "brief": (0.4, 1000),
    "speech": (0.6, 800),
    "analysis": (0.3, 1000),
    "clarification": (0.5, 800),
    "summary": (0.4, 1500),
    "follow_up": (0.5, 800),
    "decision": (0.4, 1000),
}

_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_DECISION_SECTION = re.compile(
    r"^(?:#+\s*)?\**\s*(decision|reasoning|rationale|next steps)\s*\**\s*(?::\**\s*(.*))?$",
    re.IGNORECASE,
)
_LIST_MARKER = re.compile(r"^(?:[-*•]|\d+[.)])\s+")


@dataclass
class StageResult:
    """Outcome of one stage execution."""

    stage: MeetingStage
    messages: list[Message] = field(default_factory=list)
    next_stage: MeetingStage = MeetingStage.COMPLETED
    degradation: Degradation | None = None
    reason: str | None = None
    tokens: int = 0

    @property
    def skipped(self) -> bool:
        return self.degradation is not None and not self.messages


class BrainAnalysisPayload(BaseModel):
    """Schema BRAIN's JSON reply must satisfy."""

    analysis: str
    consensus: list[str] = []
    disagreements: list[str] = []
    clarification_needed: ClarificationRequest | None = None
    should_intervene: bool = False


class FlowController:
    """Drive one meeting stage at a time.

    All generation calls go through the shared CompletionScheduler. The
    controller writes artifacts and usage onto the meeting; appending the
    returned messages is left to the caller.
    """

    def __init__(
        self,
        scheduler: CompletionScheduler,
        personas: PersonaProvider,
        compressor: ContextCompressor | None = None,
        retriever: ContextRetriever | None = None,
        rng: random.Random | None = None,
        speech_char_limit: int | None = None,
        context_min_relevance: float | None = None,
        context_limit: int | None = None,
    ):
        """Initialize controller.

        Args:
            scheduler: Global completion scheduler
            personas: Source of role system prompts
            compressor: History compressor. Defaults to standard thresholds.
            retriever: Context retriever for the opening stage. When None the
                brief is written without prior history.
            rng: Random source for speaking order. Seed it for reproducible runs.
            speech_char_limit: Cap on displayed statement length
            context_min_relevance: Relevance cutoff of the opening context package
            context_limit: Maximum items in the opening context package
        """
        self._scheduler = scheduler
        self._personas = personas
        self._compressor = compressor or ContextCompressor()
        self._retriever = retriever
        self._rng = rng or random.Random(settings.shuffle_seed)
        self.speech_char_limit = speech_char_limit or settings.speech_char_limit
        self.context_min_relevance = (
            settings.context_min_relevance
            if context_min_relevance is None
            else context_min_relevance
        )
        self.context_limit = context_limit or settings.context_package_limit

    async def execute_stage(self, meeting: Meeting, stage: MeetingStage) -> StageResult:
        """Execute one stage, or skip it under budget pressure.

        Args:
            meeting: Meeting being driven; artifacts and usage are updated
            stage: Stage to execute

        Returns:
            StageResult with the stage's messages and the next stage

        Raises:
            CompletionError: If a generation call fails
        """
        if stage.is_terminal:
            return StageResult(stage=stage, next_stage=stage)

        ledger = BudgetLedger(meeting)
        config = get_stage_config(stage)

        if ledger.should_force_decision() and stage != MeetingStage.PRIME_DECISION:
            reason = (
                f"Budget exhausted ({ledger.usage}/{ledger.budget} tokens) before "
                f"{stage.value}; jumping to {MeetingStage.PRIME_DECISION.value}"
            )
            logger.warning(
                "budget exhausted, forcing decision",
                meeting_id=str(meeting.id),
                stage=stage.value,
                usage=ledger.usage,
                budget=ledger.budget,
            )
            return StageResult(
                stage=stage,
                next_stage=MeetingStage.PRIME_DECISION,
                degradation=Degradation.SEVERE,
                reason=reason,
            )

        if ledger.should_skip(config):
            reason = (
                f"Budget at {ledger.ratio():.0%} ({ledger.usage}/{ledger.budget} "
                f"tokens); skipped {stage.value}"
            )
            logger.info(
                "budget pressure, skipping stage",
                meeting_id=str(meeting.id),
                stage=stage.value,
                ratio=round(ledger.ratio(), 3),
            )
            return StageResult(
                stage=stage,
                next_stage=next_stage(stage),
                degradation=Degradation.PARTIAL,
                reason=reason,
            )

        result = StageResult(stage=stage, next_stage=next_stage(stage))
        if (
            ledger.should_force_decision()
            and meeting.degradation != Degradation.SEVERE
        ):
            # Reached the decision naturally with the budget already spent
            result.degradation = Degradation.SEVERE
            result.reason = (
                f"Budget exhausted ({ledger.usage}/{ledger.budget} tokens) before "
                f"{stage.value}"
            )
            logger.warning(
                "budget exhausted at decision",
                meeting_id=str(meeting.id),
                usage=ledger.usage,
                budget=ledger.budget,
            )
        result.messages.append(
            system_message(f"{STAGE_ENTRY_PREFIX}{stage.value}", stage=stage.value)
        )
        usage_before = ledger.usage

        handler = {
            MeetingStage.ISSUE_BRIEF: self._issue_brief,
            MeetingStage.DEPARTMENT_SPEECHES: self._department_speeches,
            MeetingStage.BRAIN_INTERVENTION: self._brain_intervention,
            MeetingStage.PRIME_SUMMARY: self._prime_summary,
            MeetingStage.FOLLOW_UP_DISCUSSION: self._follow_up_discussion,
            MeetingStage.PRIME_DECISION: self._prime_decision,
        }[stage]
        await handler(meeting, config, ledger, result)

        result.tokens = ledger.usage - usage_before
        logger.info(
            "stage executed",
            meeting_id=str(meeting.id),
            stage=stage.value,
            messages=len(result.messages),
            tokens=result.tokens,
            usage=ledger.usage,
            budget=ledger.budget,
        )
        return result

    # Roles

    def selected_roles(self, meeting: Meeting) -> list[str]:
        selected = meeting.selected_role_ids or DEFAULT_ROLES
        roles: list[str] = []
        for role in selected:
            upper = role.strip().upper()
            if upper and upper not in roles:
                roles.append(upper)
        return roles

    def discussion_roles(self, meeting: Meeting) -> list[str]:
        """Speaking roles for the department and follow-up rounds."""
        roles = [r for r in self.selected_roles(meeting) if r not in NON_DISCUSSION_ROLES]
        return roles or list(FALLBACK_DISCUSSION_ROLES)

    def shuffled(self, roles: list[str]) -> list[str]:
        order = list(roles)
        self._rng.shuffle(order)
        return order

    # Stages

    async def _issue_brief(
        self,
        meeting: Meeting,
        config: StageConfig,
        ledger: BudgetLedger,
        result: StageResult,
    ) -> None:
        context, package_ref = await self._context_package(meeting)
        if package_ref is not None:
            meeting.artifacts.context_package = package_ref

        prompt = prompts.ISSUE_BRIEF_PROMPT.format(
            topic=meeting.topic,
            description=f"Description: {meeting.description}\n" if meeting.description else "",
            context=context,
            length=self._length_instruction(),
        )
        content = await self._call(
            meeting, Role.PRIME.value, prompt, "brief", config, ledger
        )
        meeting.artifacts.issue_brief = IssueBrief(
            content=content,
            context_tokens=package_ref.tokens if package_ref else 0,
        )
        result.messages.append(
            self._message(Role.PRIME.value, MessageType.STATEMENT, content, config.stage)
        )

    async def _department_speeches(
        self,
        meeting: Meeting,
        config: StageConfig,
        ledger: BudgetLedger,
        result: StageResult,
    ) -> None:
        order = self.shuffled(self.discussion_roles(meeting))
        meeting.artifacts.speak_plan = SpeakPlan(order=order)

        history = prompts.format_discussion(
            self._compressor.compress_if_needed(meeting), excerpt=True
        )
        brief = meeting.artifacts.issue_brief
        spoken: list[Message] = []
        for role in order:
            live = history
            if spoken:
                live = f"{history}\n\n{prompts.format_discussion(spoken)}"
            prompt = prompts.DEPARTMENT_SPEECH_PROMPT.format(
                topic=meeting.topic,
                brief=brief.content if brief else "(none)",
                discussion=live,
                focus=prompts.focus_for(role),
                length=self._length_instruction(),
            )
            content = await self._call(meeting, role, prompt, "speech", config, ledger)
            message = self._message(role, MessageType.STATEMENT, content, config.stage)
            spoken.append(message)
            result.messages.append(message)

    async def _brain_intervention(
        self,
        meeting: Meeting,
        config: StageConfig,
        ledger: BudgetLedger,
        result: StageResult,
    ) -> None:
        participants = self.discussion_roles(meeting)
        statements = [m for m in meeting.messages if m.role in participants]
        prompt = prompts.BRAIN_ANALYSIS_PROMPT.format(
            topic=meeting.topic,
            discussion=prompts.format_discussion(statements),
            roles="|".join(participants),
        )
        raw = await self._call(
            meeting,
            Role.BRAIN.value,
            prompt,
            "analysis",
            config,
            ledger,
            system_prompt=prompts.BRAIN_SYSTEM_PROMPT,
            limit_speech=False,
        )

        payload = parse_brain_analysis(raw)
        if payload is None:
            logger.warning(
                "brain analysis unparseable, using fallback",
                meeting_id=str(meeting.id),
            )
            meeting.artifacts.brain_analysis = BrainAnalysis.neutral()
            result.messages.append(
                self._message(
                    Role.BRAIN.value,
                    MessageType.STATEMENT,
                    prompts.BRAIN_FALLBACK_MESSAGE,
                    config.stage,
                    fallback=True,
                )
            )
            return

        analysis = BrainAnalysis(**payload.model_dump())
        meeting.artifacts.brain_analysis = analysis
        result.messages.append(
            self._message(
                Role.BRAIN.value,
                MessageType.PERSPECTIVE,
                self.enforce_speech_limit(analysis.analysis),
                config.stage,
                consensus=analysis.consensus,
                disagreements=analysis.disagreements,
            )
        )

        request = analysis.clarification_needed
        if not (analysis.should_intervene and request):
            return
        target = request.role.strip().upper()
        if target not in participants:
            logger.info(
                "clarification target not participating",
                meeting_id=str(meeting.id),
                target=target,
            )
            return

        result.messages.append(
            self._message(
                Role.BRAIN.value,
                MessageType.ELABORATION_REQUEST,
                request.question,
                config.stage,
                target_role=target,
            )
        )
        history = prompts.format_discussion(
            self._compressor.compress_if_needed(meeting) + result.messages[1:],
            excerpt=True,
        )
        answer = await self._call(
            meeting,
            target,
            prompts.CLARIFICATION_PROMPT.format(
                topic=meeting.topic,
                discussion=history,
                question=request.question,
                focus=prompts.focus_for(target),
                length=self._length_instruction(),
            ),
            "clarification",
            config,
            ledger,
        )
        result.messages.append(
            self._message(
                target,
                MessageType.RESPONSE,
                answer,
                config.stage,
                in_reply_to=Role.BRAIN.value,
            )
        )
        meeting.artifacts.brain_interventions.append(
            BrainIntervention(
                target_role=target,
                question=request.question,
                response=answer,
            )
        )

    async def _prime_summary(
        self,
        meeting: Meeting,
        config: StageConfig,
        ledger: BudgetLedger,
        result: StageResult,
    ) -> None:
        analysis = meeting.artifacts.brain_analysis
        analysis_block = ""
        if analysis is not None and analysis.analysis != "failed":
            analysis_block = "\nBRAIN analysis:\n" + json.dumps(
                analysis.model_dump(include={"analysis", "consensus", "disagreements"}),
                indent=2,
                ensure_ascii=False,
            ) + "\n"
        prompt = prompts.PRIME_SUMMARY_PROMPT.format(
            topic=meeting.topic,
            discussion=prompts.format_discussion(
                self._compressor.compress_if_needed(meeting)
            ),
            analysis=analysis_block,
            length=self._length_instruction(),
        )
        content = await self._call(
            meeting,
            Role.PRIME.value,
            prompt,
            "summary",
            config,
            ledger,
            limit_speech=False,
        )
        meeting.artifacts.summary = Summary(content=content)
        result.messages.append(
            self._message(
                Role.PRIME.value,
                MessageType.STATEMENT,
                self.enforce_speech_limit(content),
                config.stage,
                kind="summary",
            )
        )

    async def _follow_up_discussion(
        self,
        meeting: Meeting,
        config: StageConfig,
        ledger: BudgetLedger,
        result: StageResult,
    ) -> None:
        order = self.shuffled(self.discussion_roles(meeting))
        summary = meeting.artifacts.summary
        analysis = meeting.artifacts.brain_analysis
        if analysis and analysis.disagreements:
            points = "\n".join(
                f"{i}. {d}" for i, d in enumerate(analysis.disagreements, start=1)
            )
            disagreements = f"Points of disagreement to address:\n{points}"
        else:
            disagreements = "Judge whether the summary needs anything added."
        user_input = next(
            (m.content for m in reversed(meeting.messages) if m.role == Role.USER.value),
            "(none)",
        )

        for role in order:
            prompt = prompts.FOLLOW_UP_PROMPT.format(
                topic=meeting.topic,
                summary=summary.content if summary else "(none)",
                disagreements=disagreements,
                user_input=user_input,
                focus=prompts.focus_for(role),
                length=self._length_instruction(),
            )
            content = await self._call(
                meeting, role, prompt, "follow_up", config, ledger
            )
            if not content or prompts.is_abstention(content):
                logger.debug(
                    "role abstained",
                    meeting_id=str(meeting.id),
                    role=role,
                )
                continue
            result.messages.append(
                self._message(role, MessageType.STATEMENT, content, config.stage)
            )

    async def _prime_decision(
        self,
        meeting: Meeting,
        config: StageConfig,
        ledger: BudgetLedger,
        result: StageResult,
    ) -> None:
        prompt = prompts.PRIME_DECISION_PROMPT.format(
            topic=meeting.topic,
            discussion=prompts.format_discussion(
                self._compressor.compress_if_needed(meeting)
            ),
            length=self._length_instruction(),
        )
        content = await self._call(
            meeting,
            Role.PRIME.value,
            prompt,
            "decision",
            config,
            ledger,
            limit_speech=False,
        )
        meeting.artifacts.final_decision = parse_decision(content)
        result.messages.append(
            self._message(
                Role.PRIME.value,
                MessageType.STATEMENT,
                self.enforce_speech_limit(content),
                config.stage,
                kind="decision",
            )
        )
        result.next_stage = MeetingStage.COMPLETED

    # Helpers

    async def _context_package(
        self, meeting: Meeting
    ) -> tuple[str, ContextPackageRef | None]:
        if self._retriever is None:
            return "(none)", None
        query = MemoryQuery(
            topic=meeting.topic,
            types=list(RETRIEVAL_SCAN_ORDER),
            min_relevance=self.context_min_relevance,
            limit=self.context_limit,
        )
        try:
            package = await self._retriever.build_package(query)
        except RecordStoreError as e:
            logger.warning(
                "context retrieval failed, continuing without history",
                meeting_id=str(meeting.id),
                error=str(e),
            )
            return "(none)", None
        ref = ContextPackageRef(
            id=package.id, tokens=package.tokens, item_count=package.item_count
        )
        return package.content, ref

    async def _call(
        self,
        meeting: Meeting,
        role: str,
        prompt: str,
        kind: str,
        config: StageConfig,
        ledger: BudgetLedger,
        system_prompt: str | None = None,
        limit_speech: bool = True,
    ) -> str:
        temperature, max_tokens = CALL_SETTINGS[kind]
        system = system_prompt or self._personas.get_system_prompt(role) or ""
        chat = [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]
        response = await self._scheduler.submit(
            role,
            chat,
            temperature=temperature,
            max_tokens=min(max_tokens, config.max_tokens),
        )
        if response.usage is not None:
            tokens = response.usage.total_tokens
        else:
            tokens = estimate_tokens(system) + estimate_tokens(prompt)
            tokens += estimate_tokens(response.content)
        ledger.record(tokens)

        content = response.content.strip()
        return self.enforce_speech_limit(content) if limit_speech else content

    def _message(
        self,
        role: str,
        type: MessageType,
        content: str,
        stage: MeetingStage,
        **metadata,
    ) -> Message:
        return Message(
            role=role,
            type=type,
            content=content,
            metadata={"stage": stage.value, **metadata},
        )

    def _length_instruction(self) -> str:
        return prompts.LENGTH_INSTRUCTION.format(limit=self.speech_char_limit)

    def enforce_speech_limit(self, content: str) -> str:
        """Collapse runs of spaces and cut to the speech limit.

        Line breaks are kept so list-like lines survive for later compression.
        """
        lines = [" ".join(line.split()) for line in content.strip().splitlines()]
        normalized = "\n".join(line for line in lines if line)
        if len(normalized) <= self.speech_char_limit:
            return normalized
        return normalized[: self.speech_char_limit].rstrip()


def parse_brain_analysis(raw: str) -> BrainAnalysisPayload | None:
    """Parse BRAIN's JSON reply; None when no valid object is found.

    Accepts a fenced ```json block or the outermost {...} span. camelCase
    keys are accepted alongside snake_case.
    """
    candidates = [m.group(1) for m in _JSON_FENCE.finditer(raw)]
    match = _JSON_OBJECT.search(raw)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        if "clarificationNeeded" in data:
            data.setdefault("clarification_needed", data.pop("clarificationNeeded"))
        if "shouldIntervene" in data:
            data.setdefault("should_intervene", data.pop("shouldIntervene"))
        try:
            return BrainAnalysisPayload.model_validate(data)
        except ValidationError:
            continue
    return None


def parse_decision(text: str) -> FinalDecision:
    """Split PRIME's reply into decision, reasoning and next steps.

    Text without recognizable sections becomes the decision as a whole.
    """
    sections: dict[str, list[str]] = {}
    current: str | None = None
    for line in text.splitlines():
        match = _DECISION_SECTION.match(line.strip())
        if match:
            current = match.group(1).lower()
            if current == "rationale":
                current = "reasoning"
            sections.setdefault(current, [])
            remainder = (match.group(2) or "").strip()
            if remainder:
                sections[current].append(remainder)
            continue
        if current is not None and line.strip():
            sections[current].append(line.strip())

    decision = " ".join(sections.get("decision", [])).strip()
    if not decision:
        return FinalDecision(decision=text.strip())

    steps = [
        _LIST_MARKER.sub("", line).strip()
        for line in sections.get("next steps", [])
    ]
    return FinalDecision(
        decision=decision,
        reasoning=" ".join(sections.get("reasoning", [])).strip(),
        next_steps=[step for step in steps if step],
    )
