"""
Optimization pipeline: delay prediction, then GA -> ALNS -> Tabu Search.

Each stage consumes exactly the previous stage's best solution. The pipeline
is single-flight: a second run requested while one is active is rejected
with ``ConcurrentRunError``.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from alns import ALNSOptimizer
from config import OptimizerConfig
from delay_predictor import DelayEstimate, DelayPredictor
from errors import ConcurrentRunError, OptimizerError
from heuristics import GeneticOptimizer, build_round_robin_baseline
from models import DatasetBundle, ScenarioFactors, SequencingRule, Solution
from problem import ProblemContext
from search_control import CancellationToken, ProgressCallback, StageReport
from seed_utils import reseed_for_phase, set_global_seed
from tabu_search import TabuSearchOptimizer
from utils import calculate_kpis

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    BUILDING_GRAPH = "building_graph"
    PREDICTING_DELAYS = "predicting_delays"
    RUNNING_GA = "running_ga"
    RUNNING_ALNS = "running_alns"
    RUNNING_TABU = "running_tabu"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Overall progress window (start, end) per state
STAGE_MILESTONES: Dict[PipelineState, Tuple[float, float]] = {
    PipelineState.BUILDING_GRAPH: (0.0, 10.0),
    PipelineState.PREDICTING_DELAYS: (10.0, 20.0),
    PipelineState.RUNNING_GA: (20.0, 40.0),
    PipelineState.RUNNING_ALNS: (40.0, 70.0),
    PipelineState.RUNNING_TABU: (70.0, 90.0),
    PipelineState.COMPLETE: (90.0, 100.0),
}


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    percent: float
    description: str
    overall_percent: float


@dataclass
class OptimizationResult:
    solution: Solution
    kpis: Dict[str, float]
    stage_reports: Dict[str, StageReport]
    unassigned_vessels: Tuple[str, ...]
    issues: List[OptimizerError]
    state: PipelineState
    baseline: Optional[Solution] = None
    delay_estimates: Dict[str, DelayEstimate] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.state == PipelineState.COMPLETE


class OptimizationOrchestrator:
    """Runs the full pipeline and reports progress through ``ProgressEvent`` callbacks"""

    def __init__(self, config: Optional[OptimizerConfig] = None):
        self.config = config or OptimizerConfig()
        self._run_lock = threading.Lock()
        self._state = PipelineState.IDLE
        self._cancel_token: Optional[CancellationToken] = None
        self.state_history: List[PipelineState] = [PipelineState.IDLE]

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def cancel(self):
        """Request cooperative cancellation of the active run, if any"""
        token = self._cancel_token
        if token is not None:
            token.cancel()

    def _transition(self, state: PipelineState):
        logger.debug("Pipeline state %s -> %s", self._state.value, state.value)
        self._state = state
        self.state_history.append(state)

    def run(self, bundle: DatasetBundle,
            factors: Optional[ScenarioFactors] = None,
            rules: Iterable[SequencingRule] = (),
            progress: Optional[Callable[[ProgressEvent], None]] = None,
            cancel_token: Optional[CancellationToken] = None,
            seed: Optional[int] = None) -> OptimizationResult:
        """Run the whole pipeline on ``bundle``.

        Raises ConcurrentRunError immediately when another run is active.
        """
        if not self._run_lock.acquire(blocking=False):
            raise ConcurrentRunError()

        self._cancel_token = cancel_token or CancellationToken()
        self.state_history = [PipelineState.IDLE]
        self._state = PipelineState.IDLE
        try:
            return self._run_pipeline(bundle, factors, rules, progress, self._cancel_token, seed)
        except Exception:
            logger.exception("Optimization failed during %s", self._state.value)
            self._transition(PipelineState.FAILED)
            raise
        finally:
            self._cancel_token = None
            self._run_lock.release()

    def _run_pipeline(self, bundle: DatasetBundle,
                      factors: Optional[ScenarioFactors],
                      rules: Iterable[SequencingRule],
                      progress: Optional[Callable[[ProgressEvent], None]],
                      cancel_token: CancellationToken,
                      seed: Optional[int]) -> OptimizationResult:
        started = time.perf_counter()
        set_global_seed(self.config.seed if seed is None else seed, quiet=True)
        issues: List[OptimizerError] = []
        reports: Dict[str, StageReport] = {}

        # Graph + delay prediction
        self._transition(PipelineState.BUILDING_GRAPH)
        self._emit(progress, 0.0, "Building port/plant graph")
        predictor = DelayPredictor(bundle, self.config.predictor).build_graph()
        self._emit(progress, 100.0, f"Graph ready: {len(predictor.node_ids)} nodes")

        self._transition(PipelineState.PREDICTING_DELAYS)
        self._emit(progress, 0.0, "Propagating congestion features")
        predictor.propagate()
        estimates = predictor.predict_all()
        issues.extend(predictor.integrity_errors)
        self._emit(progress, 100.0, f"Delay estimates ready for {len(estimates)} ports")

        context = ProblemContext(bundle, estimates, factors, rules)
        infeasible = context.infeasible_input_error()
        if infeasible is not None:
            issues.append(infeasible)

        # GA
        self._transition(PipelineState.RUNNING_GA)
        reseed_for_phase("ga", quiet=True)
        ga_best, reports["GA"] = GeneticOptimizer(context, self.config.ga).run(
            cancel_token=cancel_token, progress=self._stage_progress(progress)
        )
        best = ga_best.copy()

        # ALNS
        if not reports["GA"].cancelled:
            self._transition(PipelineState.RUNNING_ALNS)
            reseed_for_phase("alns", quiet=True)
            alns_best, reports["ALNS"] = ALNSOptimizer(context, self.config.alns).run(
                best.copy(), cancel_token=cancel_token, progress=self._stage_progress(progress)
            )
            best = alns_best.copy()

        # Tabu
        if not any(report.cancelled for report in reports.values()):
            self._transition(PipelineState.RUNNING_TABU)
            reseed_for_phase("tabu", quiet=True)
            tabu_best, reports["Tabu"] = TabuSearchOptimizer(context, self.config.tabu).run(
                best.copy(), cancel_token=cancel_token, progress=self._stage_progress(progress)
            )
            best = tabu_best.copy()

        for report in reports.values():
            if report.budget_error is not None:
                issues.append(report.budget_error)

        baseline = build_round_robin_baseline(context)
        elapsed = time.perf_counter() - started
        kpis = calculate_kpis(best, bundle, baseline=baseline, optimization_time_s=elapsed)

        if any(report.cancelled for report in reports.values()):
            self._transition(PipelineState.CANCELLED)
            logger.info("Optimization cancelled; returning last committed best (fitness %.2f)", best.fitness)
        else:
            self._transition(PipelineState.COMPLETE)
            self._emit(progress, 100.0, "Optimization complete")
            logger.info("Optimization complete in %.2fs - Total cost: %.2f, violations: %d",
                        elapsed, best.total_cost, best.violations)

        return OptimizationResult(
            solution=best,
            kpis=kpis,
            stage_reports=reports,
            unassigned_vessels=best.unassigned_vessels,
            issues=issues,
            state=self._state,
            baseline=baseline,
            delay_estimates=estimates,
        )

    def _emit(self, progress: Optional[Callable[[ProgressEvent], None]], percent: float, description: str):
        if progress is None:
            return
        start, end = STAGE_MILESTONES.get(self._state, (0.0, 0.0))
        overall = start + (end - start) * percent / 100.0
        progress(ProgressEvent(self._state.value, percent, description, overall))

    def _stage_progress(self, progress: Optional[Callable[[ProgressEvent], None]]) -> Optional[ProgressCallback]:
        if progress is None:
            return None

        def relay(percent: float, description: str):
            self._emit(progress, percent, description)

        return relay


if __name__ == "__main__":
    from sample_data import load_sample_bundle
    from utils import format_currency, format_tonnage, schedule_to_frame

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    sample = load_sample_bundle()
    orchestrator = OptimizationOrchestrator(OptimizerConfig.from_env())
    result = orchestrator.run(
        sample,
        progress=lambda event: print(f"[{event.overall_percent:5.1f}%] {event.stage}: {event.description}"),
    )

    print(schedule_to_frame(result.solution, sample).to_string(index=False))
    print(f"Total cost:    {format_currency(result.kpis['total_cost'])}")
    print(f"Baseline cost: {format_currency(result.kpis['baseline_cost'])}")
    print(f"Savings:       {result.kpis['savings_pct']:.1f}%")
    print(f"Cargo moved:   {format_tonnage(result.kpis['total_cargo_mt'])}")
    print(f"Violations:    {int(result.kpis['constraint_violations'])}")
