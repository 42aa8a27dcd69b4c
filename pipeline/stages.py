"""
Explicit state machine for one pipeline run.

A run only ever moves forward through STAGE_ORDER; any failure moves it to FAILED,
remembering the stage that failed and the error that caused it.
"""
import logging
import time
from typing import List, Optional, Tuple


logger = logging.getLogger(__name__)


class Stage:
    INIT = "INIT"
    FORKING = "FORKING"
    AWAITING_FORK = "AWAITING_FORK"
    BRANCHING = "BRANCHING"
    COMMITTING = "COMMITTING"
    OPENING_PR = "OPENING_PR"
    PERSISTING = "PERSISTING"
    PERSISTED = "PERSISTED"
    FAILED = "FAILED"


STAGE_ORDER = (
    Stage.INIT,
    Stage.FORKING,
    Stage.AWAITING_FORK,
    Stage.BRANCHING,
    Stage.COMMITTING,
    Stage.OPENING_PR,
    Stage.PERSISTING,
    Stage.PERSISTED,
)

TERMINAL_STAGES = (Stage.PERSISTED, Stage.FAILED)


class InvalidTransition(RuntimeError):
    pass


class PipelineRun:
    """Tracks where a single run is. Owned by exactly one run; never shared."""

    def __init__(self, owner: str = "", repo: str = ""):
        self.owner = owner
        self.repo = repo
        self.stage = Stage.INIT
        self.failed_stage: Optional[str] = None
        self.error: Optional[BaseException] = None
        self.commit_index = 0
        self.commit_total = 0
        self.history: List[Tuple[str, float]] = [(Stage.INIT, time.time())]

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def succeeded(self) -> bool:
        return self.stage == Stage.PERSISTED

    def advance(self, stage: str):
        if self.is_terminal:
            raise InvalidTransition(f"run already finished in {self.stage}")
        if stage not in STAGE_ORDER:
            raise InvalidTransition(f"unknown stage {stage}")
        if STAGE_ORDER.index(stage) <= STAGE_ORDER.index(self.stage):
            raise InvalidTransition(f"cannot move from {self.stage} back to {stage}")
        self.stage = stage
        self.history.append((stage, time.time()))
        logger.info("%s/%s: %s", self.owner, self.repo, stage)

    def mark_commit(self, index: int, total: int):
        """Record progress inside COMMITTING (1-based index)."""
        if self.stage != Stage.COMMITTING:
            raise InvalidTransition(f"commit progress outside COMMITTING (at {self.stage})")
        if index <= self.commit_index:
            raise InvalidTransition(f"commit {index} already applied")
        self.commit_index = index
        self.commit_total = total

    def fail(self, error: BaseException, stage: str = None):
        if self.is_terminal:
            raise InvalidTransition(f"run already finished in {self.stage}")
        self.failed_stage = stage or getattr(error, 'stage', None) or self.stage
        self.error = error
        self.stage = Stage.FAILED
        self.history.append((Stage.FAILED, time.time()))
        logger.warning("%s/%s: failed in %s: %s", self.owner, self.repo, self.failed_stage, error)

    def stages(self) -> List[str]:
        return [s for s, _ in self.history]
