"""
Assembly of streamed model and agent output into committed transcript messages.

A generation runs through a GenerationHandle:

    handle = assembler.begin(thread_id, prompt, history, system_prompt)
    async for event in handle.stream():
        ...  # one StreamEvent per fragment, then a terminal event with done=True

Exactly one of these happens per handle: a completed stream commits one
assistant message with the accumulated text; a stream that produced nothing
commits nothing; a failure commits one apology message and discards the
partial text; a cancellation commits nothing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncGenerator, AsyncIterator, Callable, Dict, List, Optional, Sequence
import asyncio
import logging
import time

from ..core.errors import AgentNotConnectedError, GenerationInProgressError, ThreadNotFoundError
from ..models.chat import ErrorNotice, GenerationStats, HistoryTurn, StreamEvent
from ..models.thread import Message, MessageMetadata, Thread, ThreadMode
from .agent_client import AgentConnection
from .chat_backend import ChatBackend
from .thread_store import ThreadStore

logger = logging.getLogger(__name__)

ERROR_MESSAGE_TEMPLATE = "Sorry, I encountered an error: {error}"


@dataclass
class StreamingBuffer:
    """Text received so far for one in-flight generation. Grows only by appending."""

    thread_id: str
    text: str = ""
    started_at: float = field(default_factory=time.perf_counter)

    def append(self, fragment: str) -> None:
        self.text += fragment

    @property
    def is_empty(self) -> bool:
        return not self.text

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


class GenerationOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationHandle:
    """One in-flight generation for one thread. Its stream can be consumed once."""

    def __init__(self, assembler: "StreamingAssembler", thread_id: str, source: AsyncIterator[str]):
        self.thread_id = thread_id
        self.buffer = StreamingBuffer(thread_id)
        self.source = source
        self.stats: Optional[GenerationStats] = None
        self.outcome: Optional[GenerationOutcome] = None
        self.message: Optional[Message] = None
        self.error: Optional[str] = None
        self._assembler = assembler
        self._cancelled = False
        self._started = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    def record_stats(self, stats: GenerationStats) -> None:
        self.stats = stats

    def cancel(self) -> None:
        """
        Stop forwarding output and release the thread at once.

        A new generation may begin on the thread right away. The backend source
        of a started stream is closed at its next fragment boundary, and
        nothing it produced is committed.
        """
        if self.finished:
            return
        self._cancelled = True
        self.outcome = GenerationOutcome.CANCELLED
        self._assembler._release(self)
        if self._started:
            logger.info(f"[STREAM] Generation for thread {self.thread_id} cancelled")
        else:
            logger.info(f"[STREAM] Generation for thread {self.thread_id} cancelled before it started")

    def stream(self) -> AsyncGenerator[StreamEvent, None]:
        if self._started or self.finished:
            raise RuntimeError(f"Generation for thread {self.thread_id} was already consumed")
        self._started = True
        return self._assembler._run(self)

    async def wait(self) -> Optional[Message]:
        """Drain the stream and return the committed message, if any."""
        async for _ in self.stream():
            pass
        return self.message


async def _not_connected() -> AsyncGenerator[str, None]:
    raise AgentNotConnectedError()
    yield  # pragma: no cover


async def _close(source: AsyncIterator[str]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.warning(f"[STREAM] Error while closing backend stream: {e}")


class StreamingAssembler:
    """
    Bridges backend text streams into committed thread messages.

    At most one generation per thread is active at a time; begin() fails fast
    with GenerationInProgressError otherwise. Generations for different
    threads run independently.
    """

    def __init__(
        self,
        store: ThreadStore,
        chat_backend: ChatBackend,
        agent: Optional[AgentConnection] = None,
    ):
        self.store = store
        self.chat_backend = chat_backend
        self.agent = agent
        self.notices: Dict[str, ErrorNotice] = {}
        self._active: Dict[str, GenerationHandle] = {}

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def is_active(self, thread_id: str) -> bool:
        return thread_id in self._active

    @property
    def active_threads(self) -> List[str]:
        return list(self._active)

    def get_handle(self, thread_id: str) -> Optional[GenerationHandle]:
        return self._active.get(thread_id)

    def _release(self, handle: GenerationHandle) -> None:
        if self._active.get(handle.thread_id) is handle:
            del self._active[handle.thread_id]

    def dismiss_notice(self, thread_id: str) -> bool:
        return self.notices.pop(thread_id, None) is not None

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _open_source(
        self,
        thread: Thread,
        handle: GenerationHandle,
        prompt: str,
        history: Sequence[HistoryTurn],
        system_prompt: Optional[str],
    ) -> AsyncIterator[str]:
        if thread.mode == ThreadMode.AGENT:
            if self.agent is None:
                return _not_connected()
            thread_id = thread.id
            return self.agent.send_message(
                prompt,
                context_id=thread.context_id,
                on_context_id=lambda context_id: self.store.set_context_id(thread_id, context_id),
            )
        return self.chat_backend.chat(
            prompt,
            system_prompt=system_prompt,
            history=history,
            model_id=thread.model_id,
            on_stats=handle.record_stats,
        )

    def begin(
        self,
        thread_id: str,
        prompt: str,
        history: Sequence[HistoryTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> GenerationHandle:
        """
        Start a generation for a thread.

        The caller must already have appended the user's message. Nothing is
        sent to the backend until the handle's stream is consumed.

        Raises:
            ThreadNotFoundError: Unknown thread id
            GenerationInProgressError: The thread already has an active generation
        """
        thread = self.store.get(thread_id)
        if thread_id in self._active:
            raise GenerationInProgressError(thread_id)

        handle = GenerationHandle(self, thread_id, source=None)
        handle.source = self._open_source(thread, handle, prompt, list(history), system_prompt)
        self._active[thread_id] = handle
        self.notices.pop(thread_id, None)
        logger.info(f"[STREAM] Generation started for thread {thread_id} ({thread.mode.value})")
        return handle

    async def _run(self, handle: GenerationHandle) -> AsyncGenerator[StreamEvent, None]:
        thread_id = handle.thread_id
        try:
            try:
                async for fragment in handle.source:
                    if handle.cancelled:
                        break
                    handle.buffer.append(fragment)
                    yield StreamEvent(thread_id=thread_id, content=fragment)
            except (asyncio.CancelledError, GeneratorExit):
                handle.outcome = GenerationOutcome.CANCELLED
                logger.info(f"[STREAM] Generation for thread {thread_id} abandoned, discarding buffer")
                raise
            except Exception as e:
                if handle.cancelled:
                    logger.info(f"[STREAM] Cancelled generation for thread {thread_id} ended with an error: {e}")
                    yield StreamEvent(thread_id=thread_id, done=True, cancelled=True)
                    return
                message = self._commit_failure(handle, e)
                yield StreamEvent(
                    thread_id=thread_id,
                    done=True,
                    error=handle.error,
                    message_id=message.id if message else None,
                )
                return

            if handle.cancelled:
                handle.outcome = GenerationOutcome.CANCELLED
                logger.info(f"[STREAM] Generation for thread {thread_id} cancelled, discarding buffer")
                yield StreamEvent(thread_id=thread_id, done=True, cancelled=True)
                return

            message = self._commit_success(handle)
            yield StreamEvent(
                thread_id=thread_id,
                done=True,
                empty=message is None,
                message_id=message.id if message else None,
            )
        finally:
            if handle.outcome is None:
                handle.outcome = GenerationOutcome.CANCELLED
            await _close(handle.source)
            self._release(handle)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _metadata(self, thread: Thread, handle: GenerationHandle) -> MessageMetadata:
        if thread.mode == ThreadMode.AGENT:
            return MessageMetadata(provider="a2a", latency_ms=handle.buffer.elapsed_ms)

        stats = handle.stats
        return MessageMetadata(
            model=thread.model_id or self.chat_backend.loaded_model_id,
            provider=thread.provider_id or self.chat_backend.provider_name,
            tokens=stats.tokens_generated if stats else None,
            latency_ms=stats.total_duration_ms if stats and stats.total_duration_ms else handle.buffer.elapsed_ms,
        )

    def _commit(self, handle: GenerationHandle, build: Callable[[Thread], Message]) -> Optional[Message]:
        try:
            thread = self.store.get(handle.thread_id)
            message = build(thread)
            self.store.append(handle.thread_id, message)
        except ThreadNotFoundError:
            logger.warning(f"[STREAM] Thread {handle.thread_id} was removed during generation; dropping response")
            return None
        handle.message = message
        return message

    def _commit_success(self, handle: GenerationHandle) -> Optional[Message]:
        if handle.buffer.is_empty:
            handle.outcome = GenerationOutcome.EMPTY
            logger.warning(f"[STREAM] Backend returned an empty response for thread {handle.thread_id}")
            return None

        handle.outcome = GenerationOutcome.COMPLETED
        message = self._commit(
            handle,
            lambda thread: Message.assistant(
                handle.buffer.text,
                agent_name=thread.agent_name,
                metadata=self._metadata(thread, handle),
            ),
        )
        logger.info(
            f"[STREAM] Committed {len(handle.buffer.text)} chars to thread {handle.thread_id} "
            f"in {handle.buffer.elapsed_ms}ms"
        )
        return message

    def _commit_failure(self, handle: GenerationHandle, error: Exception) -> Optional[Message]:
        handle.outcome = GenerationOutcome.FAILED
        handle.error = str(error)
        logger.error(
            f"[STREAM] Generation for thread {handle.thread_id} failed after "
            f"{len(handle.buffer.text)} chars: {error}"
        )
        self.notices[handle.thread_id] = ErrorNotice(thread_id=handle.thread_id, message=handle.error)
        # Partial output is discarded; the transcript records the failure instead
        return self._commit(
            handle,
            lambda thread: Message.assistant(
                ERROR_MESSAGE_TEMPLATE.format(error=handle.error),
                agent_name=thread.agent_name,
            ),
        )
