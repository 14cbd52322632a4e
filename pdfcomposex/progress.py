"""Progress reporting and cooperative yielding for pipeline runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .exceptions import OperationCancelledError
from .types import ItemStatus, ProgressEvent

LOGGER = logging.getLogger("pdfcomposex.progress")

ProgressCallback = Callable[[int, str], None]
ItemStatusCallback = Callable[[int, ItemStatus], None]


class CancellationToken:
    """Cooperative cancellation flag checked at every yield point."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError()


class _State:
    __slots__ = ("percent", "events")

    def __init__(self) -> None:
        self.percent = 0
        self.events: List[ProgressEvent] = []


class ProgressReporter:
    """
    Normalised progress channel shared by every component of a run.

    Percentages are clamped into ``[0, 100]`` and never regress: a report
    lower than the last emitted value is raised to it. Components report in
    their own 0-100 scale through :meth:`scoped`, which maps that scale onto
    a window of the parent run.
    """

    def __init__(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_item_status: Optional[ItemStatusCallback] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
        start: float = 0.0,
        span: float = 100.0,
        _state: Optional[_State] = None,
    ) -> None:
        self._on_progress = on_progress
        self._on_item_status = on_item_status
        self.cancel_token = cancel_token or CancellationToken()
        self._start = start
        self._span = span
        self._state = _state or _State()

    @property
    def percent(self) -> int:
        return self._state.percent

    @property
    def events(self) -> List[ProgressEvent]:
        return list(self._state.events)

    def report(self, percent: float, label: str) -> None:
        local = max(0.0, min(float(percent), 100.0))
        absolute = round(self._start + local * self._span / 100.0)
        absolute = max(self._state.percent, min(absolute, 100))
        self._state.percent = absolute
        self._state.events.append(ProgressEvent(percent=absolute, step_label=label))
        LOGGER.debug("%3d%% %s", absolute, label)
        if self._on_progress is not None:
            self._on_progress(absolute, label)

    def item(self, index: int, status: ItemStatus) -> None:
        self._state.events.append(
            ProgressEvent(
                percent=self._state.percent,
                step_label=status,
                item_index=index,
                item_status=status,
            )
        )
        if self._on_item_status is not None:
            self._on_item_status(index, status)

    def scoped(self, start: float, span: float) -> "ProgressReporter":
        """Return a reporter whose 0-100 maps onto ``start..start+span`` of this one."""

        return ProgressReporter(
            self._on_progress,
            self._on_item_status,
            cancel_token=self.cancel_token,
            start=self._start + start * self._span / 100.0,
            span=span * self._span / 100.0,
            _state=self._state,
        )

    def silent(self) -> "ProgressReporter":
        """Return a reporter that shares cancellation but emits nothing."""

        return ProgressReporter(cancel_token=self.cancel_token)

    async def checkpoint(self, iteration: int = 0, every: int = 1) -> None:
        """Yield to the event loop every *every* iterations and honour cancellation."""

        self.cancel_token.raise_if_cancelled()
        if every <= 1 or iteration % every == 0:
            await asyncio.sleep(0)
            self.cancel_token.raise_if_cancelled()


__all__ = [
    "CancellationToken",
    "ProgressReporter",
    "ProgressCallback",
    "ItemStatusCallback",
]
