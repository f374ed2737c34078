"""Budgets, cooperative cancellation and progress checkpoints for search stages."""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from errors import BudgetExceededError, OptimizationCancelled

logger = logging.getLogger(__name__)

# (stage percent 0-100, description)
ProgressCallback = Callable[[float, str], None]


class CancellationToken:
    """Set by the caller, observed by a stage at its next checkpoint."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class StageBudget:
    max_iterations: int
    time_limit_s: Optional[float] = None


@dataclass
class StageReport:
    stage: str
    iterations: int = 0
    elapsed_s: float = 0.0
    start_fitness: Optional[float] = None
    best_fitness: Optional[float] = None
    budget_exhausted: bool = False
    cancelled: bool = False
    budget_error: Optional[BudgetExceededError] = None
    details: Dict[str, Any] = field(default_factory=dict)


class SearchMonitor:
    """Tracks a stage's clock and progress, and enforces its budget at checkpoints."""

    def __init__(self, stage: str, budget: StageBudget,
                 cancel_token: Optional[CancellationToken] = None,
                 progress: Optional[ProgressCallback] = None):
        self.stage = stage
        self.budget = budget
        self.cancel_token = cancel_token
        self.progress = progress
        self.report = StageReport(stage=stage)
        self._started_at: Optional[float] = None
        self._last_percent = 0.0

    def start(self, start_fitness: Optional[float] = None) -> "SearchMonitor":
        self._started_at = time.perf_counter()
        self.report.start_fitness = start_fitness
        self.report.best_fitness = start_fitness
        self._emit(0.0, f"{self.stage} started")
        return self

    @property
    def elapsed_s(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.perf_counter() - self._started_at

    def checkpoint(self, iteration: int, description: str = ""):
        """Report progress, then honor cancellation and the wall-clock budget."""
        self.report.iterations = iteration
        total = max(1, self.budget.max_iterations)
        self._emit(100.0 * min(iteration, total) / total, description or f"{self.stage} iteration {iteration}")

        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise OptimizationCancelled(self.stage)

        limit = self.budget.time_limit_s
        if limit is not None and self.elapsed_s > limit:
            raise BudgetExceededError(self.stage, limit, iteration)

    def finish(self, best_fitness: Optional[float] = None) -> StageReport:
        self.report.elapsed_s = self.elapsed_s
        if best_fitness is not None:
            self.report.best_fitness = best_fitness
        if not self.report.cancelled:
            self._emit(100.0, f"{self.stage} finished")
        return self.report

    def mark_budget_exhausted(self, error: BudgetExceededError):
        logger.warning("%s; keeping best solution found so far", error)
        self.report.budget_exhausted = True
        self.report.budget_error = error

    def mark_cancelled(self):
        logger.info("%s cancelled after %d iterations; keeping last committed best",
                    self.stage, self.report.iterations)
        self.report.cancelled = True

    def _emit(self, percent: float, description: str):
        # Progress never moves backwards within a stage
        percent = max(self._last_percent, min(100.0, percent))
        self._last_percent = percent
        if self.progress is not None:
            self.progress(percent, description)
