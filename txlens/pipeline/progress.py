"""Per-run progress event bus.

A ``ProgressHandle`` is created for each run and handed to the nodes through
LangGraph's ``RunnableConfig``; there is no module-level or context-local
sink. Emission never raises into the pipeline.
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel, Field

from txlens.models import ProgressEventType

logger = structlog.get_logger(__name__)


class ProgressEvent(BaseModel):
    """One progress notification delivered to the sink."""

    type: ProgressEventType
    payload: dict[str, Any] = Field(default_factory=dict)


ProgressSink = Callable[[ProgressEvent], Awaitable[None] | None]


class ProgressHandle:
    """Run-scoped emitter bound to an optional sink.

    Without a sink, or once closed, every ``emit`` is a no-op. The terminal
    ``done`` event is delivered at most once per handle.
    """

    def __init__(self, sink: ProgressSink | None = None):
        self._sink = sink
        self._closed = False
        self.terminal_emitted = False

    @property
    def active(self) -> bool:
        return self._sink is not None and not self._closed

    async def emit(self, event_type: ProgressEventType, payload: dict[str, Any] | None = None) -> None:
        if event_type == ProgressEventType.DONE:
            if self.terminal_emitted:
                logger.warning("duplicate_done_event_dropped")
                return
            self.terminal_emitted = True

        if not self.active:
            return

        event = ProgressEvent(type=event_type, payload=payload or {})
        try:
            result = self._sink(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(
                "progress_sink_error",
                event_type=event_type.value,
                error=str(e),
                exception_type=type(e).__name__,
            )

    def close(self) -> None:
        self._closed = True
