"""Feasibility checks and constraint penalties shared by all search stages."""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import (
    INFEASIBLE_PAIR_PENALTY,
    MISSING_VESSEL_PENALTY,
    PLANT_OVERLOAD_PENALTY_PER_MT,
    PORT_OVERLOAD_PENALTY_PER_MT,
)
from models import Assignment, DatasetBundle, SequencingRule, Vessel


CAPACITY_TOLERANCE_MT = 1e-6


@dataclass(frozen=True)
class FeasibilityReport:
    feasible: bool
    reasons: Tuple[str, ...] = ()


@dataclass
class PenaltyReport:
    penalty: float = 0.0
    port_overloads: Dict[str, float] = field(default_factory=dict)
    plant_overloads: Dict[str, float] = field(default_factory=dict)
    sequence_violations: List[Tuple[str, str, int]] = field(default_factory=list)
    missing_vessels: List[str] = field(default_factory=list)
    invalid_assignments: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def violations(self) -> int:
        return (
            len(self.port_overloads)
            + len(self.plant_overloads)
            + len(self.sequence_violations)
            + len(self.missing_vessels)
            + len(self.invalid_assignments)
        )


class FeasibilityChecker:
    """Capacity, material, connectivity and sequencing constraints"""

    def __init__(self, bundle: DatasetBundle, rules: Iterable[SequencingRule] = ()):
        self.vessel_lookup = {v.vessel_id: v for v in bundle.vessels}
        self.port_lookup = {p.port_id: p for p in bundle.ports}
        self.plant_lookup = {p.plant_id: p for p in bundle.plants}
        self.route_lookup = {(r.port_id, r.plant_id): r for r in bundle.routes}
        self.rules: Dict[str, SequencingRule] = {}
        for rule in rules:
            if rule.port_id in self.rules:
                raise ValueError(f"Duplicate sequencing rule for port {rule.port_id}")
            self.rules[rule.port_id] = rule

    def pair_issues(self, vessel: Vessel, port_id: str, plant_id: str) -> List[str]:
        """Reasons why ``vessel`` cannot discharge at ``port_id`` for ``plant_id``.

        Capacity is read as *available* capacity (max capacity minus current
        stock) at both the port and the plant, so a full vessel load must fit
        into the space that is actually free today.
        """
        issues: List[str] = []
        port = self.port_lookup.get(port_id)
        plant = self.plant_lookup.get(plant_id)
        if port is None:
            issues.append(f"unknown port {port_id}")
        if plant is None:
            issues.append(f"unknown plant {plant_id}")
        if issues:
            return issues

        if (port_id, plant_id) not in self.route_lookup:
            issues.append(f"no route {port_id}->{plant_id}")
        if not plant.rail_connected:
            issues.append(f"plant {plant_id} has no rail connectivity")
        if not materials_compatible(vessel.cargo_grade, plant.required_material):
            issues.append(
                f"cargo {vessel.cargo_grade} does not match {plant_id} requirement {plant.required_material}"
            )
        if vessel.capacity_mt > port.available_capacity_mt + CAPACITY_TOLERANCE_MT:
            issues.append(
                f"vessel capacity {vessel.capacity_mt:,.0f} exceeds port {port_id} "
                f"available capacity {port.available_capacity_mt:,.0f}"
            )
        if vessel.capacity_mt > plant.available_capacity_mt + CAPACITY_TOLERANCE_MT:
            issues.append(
                f"vessel capacity {vessel.capacity_mt:,.0f} exceeds plant {plant_id} "
                f"available capacity {plant.available_capacity_mt:,.0f}"
            )
        return issues

    def pair_feasible(self, vessel: Vessel, port_id: str, plant_id: str) -> bool:
        return not self.pair_issues(vessel, port_id, plant_id)

    def feasible_pairs(self, vessel: Vessel) -> List[Tuple[str, str]]:
        return sorted(
            pair for pair in self.route_lookup
            if self.pair_feasible(vessel, *pair)
        )

    def check(self, assignment: Assignment) -> FeasibilityReport:
        vessel = self.vessel_lookup.get(assignment.vessel_id)
        if vessel is None:
            return FeasibilityReport(False, (f"unknown vessel {assignment.vessel_id}",))

        reasons = self.pair_issues(vessel, assignment.port_id, assignment.plant_id)
        if assignment.quantity_mt <= 0:
            reasons.append(f"non-positive quantity {assignment.quantity_mt}")
        route = self.route_lookup.get(assignment.pair)
        limit = min(vessel.capacity_mt, route.max_capacity_mt) if route else vessel.capacity_mt
        if assignment.quantity_mt > limit + CAPACITY_TOLERANCE_MT:
            reasons.append(f"quantity {assignment.quantity_mt:,.0f} exceeds limit {limit:,.0f}")
        return FeasibilityReport(not reasons, tuple(reasons))

    def sequence_violations(self, assignments: Sequence[Assignment]) -> List[Tuple[str, str, int]]:
        """(vessel, port, actual call position) for every call that breaks a sequencing rule."""
        if not self.rules:
            return []
        calls_so_far: Dict[str, int] = {}
        violations = []
        for assignment in assignments:
            vessel = self.vessel_lookup.get(assignment.vessel_id)
            prior = len(vessel.prior_calls) if vessel else 0
            position = calls_so_far.get(assignment.vessel_id, prior) + 1
            calls_so_far[assignment.vessel_id] = position
            rule = self.rules.get(assignment.port_id)
            if rule is not None and rule.call_position != position:
                violations.append((assignment.vessel_id, assignment.port_id, position))
        return violations

    def evaluate(self, assignments: Sequence[Assignment],
                 expected_vessels: Optional[Iterable[str]] = None) -> PenaltyReport:
        """Penalty and violation details for a complete or partial assignment list."""
        report = PenaltyReport()
        port_usage: Dict[str, float] = defaultdict(float)
        plant_usage: Dict[str, float] = defaultdict(float)

        for assignment in assignments:
            if not self.check(assignment).feasible:
                report.invalid_assignments.append((assignment.vessel_id, assignment.port_id))
                report.penalty += INFEASIBLE_PAIR_PENALTY
            port_usage[assignment.port_id] += assignment.quantity_mt
            plant_usage[assignment.plant_id] += assignment.quantity_mt

        for port_id, usage in sorted(port_usage.items()):
            port = self.port_lookup.get(port_id)
            if port is None:
                continue
            overload = usage - port.available_capacity_mt
            if overload > CAPACITY_TOLERANCE_MT:
                report.port_overloads[port_id] = overload
                report.penalty += overload * PORT_OVERLOAD_PENALTY_PER_MT

        for plant_id, usage in sorted(plant_usage.items()):
            plant = self.plant_lookup.get(plant_id)
            if plant is None:
                continue
            overload = usage - plant.available_capacity_mt
            if overload > CAPACITY_TOLERANCE_MT:
                report.plant_overloads[plant_id] = overload
                report.penalty += overload * PLANT_OVERLOAD_PENALTY_PER_MT

        for violation in self.sequence_violations(assignments):
            report.sequence_violations.append(violation)
            report.penalty += self.rules[violation[1]].penalty

        if expected_vessels is not None:
            present = {a.vessel_id for a in assignments}
            for vessel_id in expected_vessels:
                if vessel_id not in present:
                    report.missing_vessels.append(vessel_id)
                    report.penalty += MISSING_VESSEL_PENALTY

        return report


def materials_compatible(cargo_grade: Optional[str], required_material: Optional[str]) -> bool:
    if not cargo_grade or not required_material:
        return True
    return cargo_grade.strip().upper() == required_material.strip().upper()
