"""Tests for the global FIFO completion scheduler."""

import asyncio

import pytest

from cabinet.errors import CompletionError
from cabinet.orchestrator.scheduler import CompletionScheduler
from cabinet.services.llm_client import CompletionResult


class RecordingClient:
    """Client that logs call start/end and yields to the loop mid-call."""

    def __init__(self, fail_roles: tuple[str, ...] = ()):
        self.log: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_roles = fail_roles

    async def complete(self, role, messages, temperature=None, max_tokens=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.log.append(f"start:{role}")
        await asyncio.sleep(0.01)
        self.log.append(f"end:{role}")
        self.in_flight -= 1
        if role in self.fail_roles:
            raise CompletionError(f"{role} unavailable")
        return CompletionResult(content=f"reply from {role}")


def _chat(text: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": text}]


@pytest.mark.asyncio
async def test_requests_run_one_at_a_time_in_submission_order() -> None:
    client = RecordingClient()
    scheduler = CompletionScheduler(client)

    results = await asyncio.gather(
        scheduler.submit("CRITIC", _chat("a")),
        scheduler.submit("FINANCE", _chat("b")),
        scheduler.submit("WORKS", _chat("c")),
    )
    await scheduler.aclose()

    assert [r.content for r in results] == [
        "reply from CRITIC",
        "reply from FINANCE",
        "reply from WORKS",
    ]
    assert client.max_in_flight == 1
    assert client.log == [
        "start:CRITIC",
        "end:CRITIC",
        "start:FINANCE",
        "end:FINANCE",
        "start:WORKS",
        "end:WORKS",
    ]


@pytest.mark.asyncio
async def test_failure_only_reaches_its_own_caller() -> None:
    client = RecordingClient(fail_roles=("FINANCE",))
    scheduler = CompletionScheduler(client)

    results = await asyncio.gather(
        scheduler.submit("CRITIC", _chat("a")),
        scheduler.submit("FINANCE", _chat("b")),
        scheduler.submit("WORKS", _chat("c")),
        return_exceptions=True,
    )
    await scheduler.aclose()

    assert results[0].content == "reply from CRITIC"
    assert isinstance(results[1], CompletionError)
    assert results[2].content == "reply from WORKS"
    assert scheduler.submitted == 3
    assert scheduler.completed == 2
    assert scheduler.failed == 1


@pytest.mark.asyncio
async def test_concurrent_meetings_share_one_queue() -> None:
    client = RecordingClient()
    scheduler = CompletionScheduler(client)

    async def meeting(prefix: str) -> None:
        for i in range(3):
            await scheduler.submit(f"{prefix}{i}", _chat(prefix))

    await asyncio.gather(meeting("A"), meeting("B"))
    await scheduler.aclose()

    assert client.max_in_flight == 1
    assert len(client.log) == 12


@pytest.mark.asyncio
async def test_worker_restarts_after_close() -> None:
    client = RecordingClient()
    scheduler = CompletionScheduler(client)

    await scheduler.submit("PRIME", _chat("first"))
    await scheduler.aclose()
    result = await scheduler.submit("PRIME", _chat("second"))
    await scheduler.aclose()

    assert result.content == "reply from PRIME"
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_close_without_worker_is_noop() -> None:
    scheduler = CompletionScheduler(RecordingClient())
    await scheduler.aclose()
    assert scheduler.submitted == 0


class CancellingClient(RecordingClient):
    """Client whose call for one role raises CancelledError."""

    def __init__(self, cancel_role: str):
        super().__init__()
        self.cancel_role = cancel_role

    async def complete(self, role, messages, temperature=None, max_tokens=None):
        if role == self.cancel_role:
            raise asyncio.CancelledError()
        return await super().complete(role, messages, temperature, max_tokens)


@pytest.mark.asyncio
async def test_cancelled_call_does_not_block_queue() -> None:
    client = CancellingClient(cancel_role="CRITIC")
    scheduler = CompletionScheduler(client)

    results = await asyncio.wait_for(
        asyncio.gather(
            scheduler.submit("CRITIC", _chat("a")),
            scheduler.submit("FINANCE", _chat("b")),
            scheduler.submit("WORKS", _chat("c")),
            return_exceptions=True,
        ),
        timeout=2,
    )
    await scheduler.aclose()

    assert isinstance(results[0], CompletionError)
    assert results[1].content == "reply from FINANCE"
    assert results[2].content == "reply from WORKS"
    assert scheduler.failed == 1
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_stopped_worker_fails_queued_requests() -> None:
    client = RecordingClient()
    scheduler = CompletionScheduler(client)

    calls = [
        asyncio.create_task(scheduler.submit(role, _chat(role)))
        for role in ("CRITIC", "FINANCE", "WORKS")
    ]
    while not client.log:
        await asyncio.sleep(0)
    scheduler._worker.cancel()

    results = await asyncio.wait_for(
        asyncio.gather(*calls, return_exceptions=True), timeout=2
    )

    assert all(isinstance(r, CompletionError) for r in results)
    assert scheduler.pending == 0

    result = await scheduler.submit("PRIME", _chat("after restart"))
    await scheduler.aclose()
    assert result.content == "reply from PRIME"
