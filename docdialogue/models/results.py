"""Typed outcome of a pipeline stage."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Outcome(str, Enum):
    OK = "ok"
    WARNING = "warning"
    FATAL = "fatal"


@dataclass
class StageResult:
    """
    What a stage produced and how the orchestrator must treat it.

    ``WARNING`` means a best-effort write failed and the run continues;
    ``FATAL`` means the run must be marked failed and aborted.
    """

    stage: str
    outcome: Outcome
    message: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, stage: str) -> "StageResult":
        return cls(stage=stage, outcome=Outcome.OK)

    @classmethod
    def warning(
        cls, stage: str, message: str, error: Optional[BaseException] = None
    ) -> "StageResult":
        return cls(stage=stage, outcome=Outcome.WARNING, message=message, error=error)

    @classmethod
    def fatal(
        cls, stage: str, message: str, error: Optional[BaseException] = None
    ) -> "StageResult":
        return cls(stage=stage, outcome=Outcome.FATAL, message=message, error=error)

    @property
    def is_fatal(self) -> bool:
        return self.outcome is Outcome.FATAL

    @property
    def is_warning(self) -> bool:
        return self.outcome is Outcome.WARNING
