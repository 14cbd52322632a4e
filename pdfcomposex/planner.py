"""Classify a batch of conversion tasks into execution groups."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from .exceptions import PipelineError
from .types import ConversionTask, MediaKind, PDF_MEDIA_TYPE, SourceAsset

LOGGER = logging.getLogger("pdfcomposex.planner")

MIN_MERGE_GROUP = 2


@dataclass
class ExecutionPlan:
    """
    Partition of a task list.

    Attributes:
        merge_group: Raster tasks embedded together into one document
        individual: Tasks converted one by one, in submission order
        passthrough: Subset of ``individual`` whose source already has the
            target encoding and is copied without transformation
    """

    merge_group: List[ConversionTask] = field(default_factory=list)
    individual: List[ConversionTask] = field(default_factory=list)
    passthrough: List[ConversionTask] = field(default_factory=list)

    def is_passthrough(self, task: ConversionTask) -> bool:
        return task in self.passthrough

    @property
    def total(self) -> int:
        return len(self.merge_group) + len(self.individual)


def target_media_type(task: ConversionTask) -> str:
    if task.target_media_kind == MediaKind.PAGINATED:
        return PDF_MEDIA_TYPE
    if not task.target_encoding:
        raise PipelineError(f"Task for source {task.source_id} has no target encoding")
    return task.target_encoding


def plan_tasks(
    tasks: Sequence[ConversionTask],
    assets: Mapping[str, SourceAsset],
    *,
    merge_flag: bool = False,
) -> ExecutionPlan:
    """Group *tasks* into merge-group, individual and passthrough work.

    Raster sources targeting the paginated kind form the merge group only
    when *merge_flag* is set and at least two of them qualify; otherwise they
    are converted one by one. The result does not depend on anything but the
    task list, the source media types and the flag.
    """

    if not tasks:
        raise PipelineError("No files selected")

    ordered = sorted(tasks, key=lambda task: task.order)
    sources: Dict[str, SourceAsset] = dict(assets)

    mergeable = [
        task
        for task in ordered
        if task.target_media_kind == MediaKind.PAGINATED
        and sources[task.source_id].media_kind == MediaKind.RASTER
    ]

    plan = ExecutionPlan()
    if merge_flag and len(mergeable) >= MIN_MERGE_GROUP:
        plan.merge_group = mergeable
    elif merge_flag and mergeable:
        LOGGER.debug("Only %d raster(s) target PDF, converting individually", len(mergeable))

    for task in ordered:
        if task in plan.merge_group:
            continue
        plan.individual.append(task)
        if sources[task.source_id].media_type == target_media_type(task):
            plan.passthrough.append(task)

    LOGGER.debug(
        "Planned %d merged, %d individual (%d passthrough) task(s)",
        len(plan.merge_group),
        len(plan.individual),
        len(plan.passthrough),
    )
    return plan


__all__ = ["ExecutionPlan", "plan_tasks", "target_media_type", "MIN_MERGE_GROUP"]
