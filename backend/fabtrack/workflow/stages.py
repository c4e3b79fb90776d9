"""
Stage sequence and next-stage resolution.

STAGE_SEQUENCE is the only place stage order is defined. Every advance
(job completion, QC approval, skip, batch move) goes through next_stage()
so skip handling is identical at Job and Batch level.
"""

from typing import Iterable, Optional, Tuple

from .models import Stage, STAGE_COMPLETED, NextStage


STAGE_SEQUENCE: Tuple[Stage, ...] = (
    Stage.DESIGN,
    Stage.CUTTING,
    Stage.BENDING,
    Stage.PUNCHING,
    Stage.FABRICATION,
    Stage.POWDER_COATING,
    Stage.ASSEMBLY,
    Stage.DISPATCH,
)

# Stages a job may opt out of via skip_stage(). Currently every stage.
SKIPPABLE_STAGES = frozenset(STAGE_SEQUENCE)

LAST_STAGE: Stage = STAGE_SEQUENCE[-1]

_INDEX = {stage: position for position, stage in enumerate(STAGE_SEQUENCE)}


def stage_index(stage: Stage) -> int:
    """Position of a stage in the pipeline, -1 if unknown."""
    return _INDEX.get(stage, -1)


def next_stage(current: Stage, skipped: Optional[Iterable[Stage]] = None) -> NextStage:
    """
    Resolve the stage that follows `current`.

    Walks the sequence from the position after `current` and returns the
    first stage not in `skipped`. Total: an unknown or last stage, or a walk
    that exhausts the sequence, yields STAGE_COMPLETED.

    Args:
        current: The stage being left
        skipped: Stages the job has opted out of

    Returns:
        The next Stage, or STAGE_COMPLETED
    """
    skipped_set = frozenset(skipped or ())
    position = stage_index(current)
    if position == -1:
        return STAGE_COMPLETED

    for candidate in STAGE_SEQUENCE[position + 1:]:
        if candidate not in skipped_set:
            return candidate
    return STAGE_COMPLETED


def is_terminal(stage: NextStage) -> bool:
    return stage == STAGE_COMPLETED


def is_production_stage(stage: NextStage) -> bool:
    """True for every real stage after DESIGN (stages that need physical batches)."""
    return not is_terminal(stage) and stage_index(stage) > stage_index(Stage.DESIGN)


def most_advanced(stages: Iterable[Stage], default: Stage) -> Stage:
    """
    The latest stage in sequence order among `stages`.

    Returns `default` when `stages` is empty.
    """
    best = None
    for stage in stages:
        if best is None or stage_index(stage) > stage_index(best):
            best = stage
    return best if best is not None else default