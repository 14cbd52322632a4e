from __future__ import annotations

import asyncio

import pytest

from pdfcomposex.exceptions import OperationCancelledError
from pdfcomposex.progress import CancellationToken, ProgressReporter


def test_progress_is_clamped_and_monotonic() -> None:
    seen: list[tuple[int, str]] = []
    reporter = ProgressReporter(lambda percent, label: seen.append((percent, label)))

    reporter.report(40, "forty")
    reporter.report(10, "backwards")
    reporter.report(250, "overflow")

    assert [percent for percent, _ in seen] == [40, 40, 100]
    assert seen[1][1] == "backwards"
    assert reporter.percent == 100


def test_scoped_reporter_maps_onto_parent_window() -> None:
    seen: list[int] = []
    reporter = ProgressReporter(lambda percent, label: seen.append(percent))
    child = reporter.scoped(10, 40)

    child.report(0, "start")
    child.report(50, "half")
    child.report(100, "end")
    nested = child.scoped(50, 50)
    nested.report(50, "nested")

    assert seen == [10, 30, 50, 50]


def test_item_status_callback() -> None:
    statuses: list[tuple[int, str]] = []
    reporter = ProgressReporter(on_item_status=lambda index, status: statuses.append((index, status)))

    reporter.item(0, "processing")
    reporter.item(0, "done")

    assert statuses == [(0, "processing"), (0, "done")]
    assert [event.item_status for event in reporter.events] == ["processing", "done"]


def test_silent_reporter_emits_nothing() -> None:
    seen: list[int] = []
    reporter = ProgressReporter(lambda percent, label: seen.append(percent))

    reporter.silent().report(50, "hidden")

    assert seen == []


def test_checkpoint_raises_when_cancelled() -> None:
    token = CancellationToken()
    reporter = ProgressReporter(cancel_token=token)

    asyncio.run(reporter.checkpoint())
    token.cancel()

    with pytest.raises(OperationCancelledError):
        asyncio.run(reporter.checkpoint(1, 5))


def test_checkpoint_yields_to_other_tasks() -> None:
    order: list[str] = []

    async def worker(reporter: ProgressReporter) -> None:
        for index in range(3):
            order.append(f"work-{index}")
            await reporter.checkpoint(index)

    async def observer() -> None:
        order.append("observer")

    async def main() -> None:
        await asyncio.gather(worker(ProgressReporter()), observer())

    asyncio.run(main())

    assert order.index("observer") < order.index("work-2")
