"""Error kinds raised and reported by the optimization core."""
from typing import Iterable, Optional, Tuple


class OptimizerError(Exception):
    """Base class for all optimizer errors."""


class DataIntegrityError(OptimizerError):
    """A record references an entity that does not exist.

    Localized to the offending record: it is logged and skipped, the run
    continues.
    """

    def __init__(self, record_kind: str, record_id: str, detail: str):
        self.record_kind = record_kind
        self.record_id = record_id
        self.detail = detail
        super().__init__(f"{record_kind} {record_id}: {detail}")


class InfeasibleInputError(OptimizerError):
    """One or more vessels have no feasible (port, plant) pair."""

    def __init__(self, vessel_ids: Iterable[str]):
        self.vessel_ids: Tuple[str, ...] = tuple(vessel_ids)
        super().__init__(
            f"No feasible port/plant pair for {len(self.vessel_ids)} vessel(s): "
            f"{', '.join(self.vessel_ids)}"
        )


class BudgetExceededError(OptimizerError):
    """A stage ran out of wall-clock budget. Not fatal: the stage keeps its best."""

    def __init__(self, stage: str, limit_s: float, iterations: Optional[int] = None):
        self.stage = stage
        self.limit_s = limit_s
        self.iterations = iterations
        message = f"{stage} exceeded its {limit_s:.2f}s budget"
        if iterations is not None:
            message += f" after {iterations} iterations"
        super().__init__(message)


class ConcurrentRunError(OptimizerError):
    """A run was requested while another run is in progress."""

    def __init__(self):
        super().__init__("Optimizer is busy: a run is already in progress")


class OptimizationCancelled(OptimizerError):
    """Raised at a checkpoint once cancellation has been requested."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Cancelled during {stage}")
