"""Process-wide FIFO scheduler for generation requests.

Every generation call, for every role, stage and meeting, runs through one
queue consumed by a single worker. A request starts only after every
earlier-submitted request has finished. Upstream rate limits and prompts
that quote "what was just said" both depend on this total order, so the
serialization point is intentional.
"""

import asyncio
from dataclasses import dataclass, field

import structlog

from cabinet.errors import CompletionError
from cabinet.services.llm_client import CompletionClient, CompletionResult

logger = structlog.get_logger()


@dataclass
class _Request:
    role: str
    messages: list[dict[str, str]]
    temperature: float | None
    max_tokens: int | None
    future: asyncio.Future = field(repr=False)


class CompletionScheduler:
    """Serialize generation calls into one global queue.

    A failing request resolves its own caller's future with the exception
    and the worker moves on to the next request. A client that raises
    CancelledError fails only its own request. If the worker itself is
    cancelled, every queued request fails with CompletionError.
    """

    def __init__(self, client: CompletionClient):
        """Initialize scheduler.

        Args:
            client: Generation capability shared by all roles
        """
        self._client = client
        self._queue: asyncio.Queue[_Request | None] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self.submitted = 0
        self.completed = 0
        self.failed = 0

    async def submit(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        """Enqueue a generation request and wait for its result.

        Args:
            role: Role issuing the request
            messages: Chat messages ({"role", "content"}) for the call
            temperature: Optional sampling temperature
            max_tokens: Optional output token ceiling

        Returns:
            CompletionResult from the generation client

        Raises:
            Exception: Whatever the generation client raised for this request
        """
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        self.submitted += 1
        await self._queue.put(
            _Request(
                role=role,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                future=future,
            )
        )
        return await future

    @property
    def pending(self) -> int:
        """Number of requests waiting behind the one in flight."""
        return self._queue.qsize()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            while True:
                request = await self._queue.get()
                if request is None:
                    self._queue.task_done()
                    return
                try:
                    await self._execute(request)
                finally:
                    self._queue.task_done()
        except BaseException:
            self._abandon_queued()
            raise

    async def _execute(self, request: _Request) -> None:
        logger.debug(
            "completion started",
            role=request.role,
            pending=self._queue.qsize(),
        )
        try:
            result = await self._client.complete(
                request.role,
                request.messages,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except Exception as e:
            self._fail(request, e)
            return
        except asyncio.CancelledError:
            self._fail(
                request, CompletionError(f"Completion for {request.role} was cancelled")
            )
            # Only a cancellation of the worker itself stops the queue
            if asyncio.current_task().cancelling():
                raise
            return
        except BaseException as e:
            self._fail(
                request,
                CompletionError(f"Completion for {request.role} aborted: {e!r}"),
            )
            raise

        self.completed += 1
        if not request.future.done():
            request.future.set_result(result)

    def _fail(self, request: _Request, error: BaseException) -> None:
        self.failed += 1
        logger.warning("completion failed", role=request.role, error=str(error))
        if not request.future.done():
            request.future.set_exception(error)

    def _abandon_queued(self) -> None:
        """Fail every waiting request when the worker stops abnormally."""
        abandoned = 0
        while not self._queue.empty():
            request = self._queue.get_nowait()
            self._queue.task_done()
            if request is None:
                continue
            self._fail(request, CompletionError("Completion worker stopped"))
            abandoned += 1
        if abandoned:
            logger.error("completion worker stopped", abandoned=abandoned)

    async def aclose(self) -> None:
        """Let queued requests finish, then stop the worker."""
        if self._worker is None or self._worker.done():
            return
        await self._queue.put(None)
        await self._worker
        self._worker = None
