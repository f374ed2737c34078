"""
Problem context shared by the search stages.

The orchestrator owns one ``ProblemContext`` per run. Stages borrow it
read-only: lookups, delay estimates, the cost model and the feasibility
checker never change while a run is in progress.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from config import PLANT_OVERLOAD_PENALTY_PER_MT, PORT_OVERLOAD_PENALTY_PER_MT
from delay_predictor import FALLBACK_ESTIMATE, DelayEstimate
from errors import DataIntegrityError, InfeasibleInputError
from feasibility import FeasibilityChecker
from models import Assignment, DatasetBundle, ScenarioFactors, SequencingRule, Solution
from utils import CostCalculator

logger = logging.getLogger(__name__)

Choice = Tuple[str, str, str]  # (vessel_id, port_id, plant_id)


@dataclass
class Loads:
    """Running tonnage per port and plant, used for incremental insertion costs."""

    port: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    plant: Dict[str, float] = field(default_factory=lambda: defaultdict(float))

    def add(self, assignment: Assignment):
        self.port[assignment.port_id] += assignment.quantity_mt
        self.plant[assignment.plant_id] += assignment.quantity_mt

    @classmethod
    def of(cls, assignments: Iterable[Assignment]) -> "Loads":
        loads = cls()
        for assignment in assignments:
            loads.add(assignment)
        return loads


class ProblemContext:
    """Read-only view of one optimization problem instance."""

    def __init__(self, bundle: DatasetBundle,
                 delay_estimates: Optional[Mapping[str, DelayEstimate]] = None,
                 factors: Optional[ScenarioFactors] = None,
                 rules: Iterable[SequencingRule] = ()):
        self.bundle = bundle
        self.factors = factors or ScenarioFactors()
        self.rules = tuple(rules)
        self.delay_estimates: Dict[str, DelayEstimate] = dict(delay_estimates or {})
        self.cost_calculator = CostCalculator(bundle, self.delay_estimates)
        self.checker = FeasibilityChecker(bundle, self.rules)

        self.vessel_lookup = {v.vessel_id: v for v in bundle.vessels}
        self.port_lookup = {p.port_id: p for p in bundle.ports}
        self.plant_lookup = {p.plant_id: p for p in bundle.plants}
        self.route_lookup = {(r.port_id, r.plant_id): r for r in bundle.routes}
        self.port_ids = sorted(self.port_lookup)

        ordered = sorted(bundle.vessels, key=lambda v: (v.eta, v.vessel_id))
        self.vessel_order: List[str] = [v.vessel_id for v in ordered]
        self.vessel_rank = {vessel_id: idx for idx, vessel_id in enumerate(self.vessel_order)}

        self.feasible_pairs: Dict[str, List[Tuple[str, str]]] = {
            v.vessel_id: self.checker.feasible_pairs(v) for v in ordered
        }
        self.assignable_vessels: List[str] = [vid for vid in self.vessel_order if self.feasible_pairs[vid]]
        self.unassignable_vessels: List[str] = [vid for vid in self.vessel_order if not self.feasible_pairs[vid]]
        self._assignment_cache: Dict[Choice, Assignment] = {}

        if self.unassignable_vessels:
            logger.warning("%s", self.infeasible_input_error())

    def infeasible_input_error(self) -> Optional[InfeasibleInputError]:
        if not self.unassignable_vessels:
            return None
        return InfeasibleInputError(self.unassignable_vessels)

    def estimate_for(self, port_id: str) -> DelayEstimate:
        return self.delay_estimates.get(port_id, FALLBACK_ESTIMATE)

    def make_assignment(self, vessel_id: str, port_id: str, plant_id: str) -> Assignment:
        """Priced assignment for one (vessel, port, plant) choice.

        An assignment's cost depends only on its own references, so results
        are memoized per choice.
        """
        key = (vessel_id, port_id, plant_id)
        cached = self._assignment_cache.get(key)
        if cached is not None:
            return cached

        vessel = self.vessel_lookup.get(vessel_id)
        port = self.port_lookup.get(port_id)
        route = self.route_lookup.get((port_id, plant_id))
        if vessel is None or port is None or route is None or plant_id not in self.plant_lookup:
            raise DataIntegrityError("assignment", vessel_id, f"cannot resolve {port_id}->{plant_id}")

        quantity = min(vessel.capacity_mt, route.max_capacity_mt)
        estimate = self.estimate_for(port_id)
        assignment = Assignment(
            vessel_id=vessel_id,
            port_id=port_id,
            plant_id=plant_id,
            quantity_mt=quantity,
            dwell_days=quantity / self.cost_calculator.discharge_rate(port),
            predicted_delay_days=estimate.expected_delay_days * self.factors.delay_multiplier,
            congestion_risk=estimate.congestion_risk,
            route_id=route.route_id,
        )
        assignment = replace(assignment, cost=self.cost_calculator.breakdown(assignment, self.factors))
        self._assignment_cache[key] = assignment
        return assignment

    def order(self, assignments: Iterable[Assignment]) -> List[Assignment]:
        """Schedule order: vessel ETA, then vessel id; a vessel's calls keep their relative order."""
        return sorted(assignments, key=lambda a: self.vessel_rank.get(a.vessel_id, len(self.vessel_rank)))

    def build_solution(self, assignments: Sequence[Assignment], stage: str = "") -> Solution:
        ordered = self.order(assignments)
        result = self.cost_calculator.cost(ordered, self.factors)
        report = self.checker.evaluate(ordered, expected_vessels=self.assignable_vessels)
        priced = tuple(
            a if breakdown is None else replace(a, cost=breakdown)
            for a, breakdown in zip(ordered, result.breakdowns)
        )
        unassigned = tuple(self.unassignable_vessels) + tuple(report.missing_vessels)
        violations = report.violations + len(result.integrity_errors)
        return Solution(
            assignments=priced,
            total_cost=result.total,
            penalty=report.penalty,
            violations=violations,
            unassigned_vessels=unassigned,
            stage=stage,
        )

    def solution_from_choices(self, choices: Iterable[Choice], stage: str = "") -> Solution:
        return self.build_solution([self.make_assignment(*choice) for choice in choices], stage)

    def fitness(self, assignments: Sequence[Assignment]) -> float:
        return self.build_solution(assignments).fitness

    def insertion_cost(self, loads: Loads, assignment: Assignment) -> float:
        """Marginal fitness of adding ``assignment`` to a partial solution with ``loads``."""
        cost = assignment.cost.total if assignment.cost is not None else 0.0

        port = self.port_lookup[assignment.port_id]
        plant = self.plant_lookup[assignment.plant_id]
        cost += PORT_OVERLOAD_PENALTY_PER_MT * _overload_increase(
            loads.port[assignment.port_id], assignment.quantity_mt, port.available_capacity_mt
        )
        cost += PLANT_OVERLOAD_PENALTY_PER_MT * _overload_increase(
            loads.plant[assignment.plant_id], assignment.quantity_mt, plant.available_capacity_mt
        )

        # One call per vessel: its position is right after its prior calls
        rule = self.checker.rules.get(assignment.port_id)
        if rule is not None:
            vessel = self.vessel_lookup[assignment.vessel_id]
            if rule.call_position != len(vessel.prior_calls) + 1:
                cost += rule.penalty
        return cost


def _overload_increase(current: float, added: float, capacity: float) -> float:
    before = max(0.0, current - capacity)
    after = max(0.0, current + added - capacity)
    return after - before
