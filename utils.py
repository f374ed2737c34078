"""Cost model, scenario overlays, and KPI analytics."""
import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import (
    CONGESTION_DELAY_WEIGHT,
    CONGESTION_RISK_WEIGHT,
    DEFAULT_DISCHARGE_RATE_MT_PER_DAY,
    DEFAULT_HANDLING_COST_PER_MT,
    DEFAULT_OCEAN_FREIGHT_PER_MT,
    DEFAULT_STORAGE_COST_PER_MT_PER_DAY,
    DELAY_SCENARIO_MULTIPLIERS,
    IDLE_VESSEL_CO2_T_PER_DAY,
    PORT_BENCHMARKS,
    RAIL_CO2_T_PER_MT_DAY,
)
from delay_predictor import DelayEstimate
from errors import DataIntegrityError
from models import (
    GLOBAL_SCOPE,
    Assignment,
    CostBreakdown,
    CostEntry,
    DatasetBundle,
    Port,
    ScenarioFactors,
    Solution,
    Vessel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostResult:
    total: float
    breakdowns: Tuple[Optional[CostBreakdown], ...]
    integrity_errors: Tuple[DataIntegrityError, ...] = ()


class CostCalculator:
    """Prices assignments: ocean freight, handling, storage, rail, demurrage.

    ``cost`` is a pure function of its arguments and the read-only tables
    captured at construction time.
    """

    def __init__(self, bundle: DatasetBundle,
                 delay_estimates: Optional[Mapping[str, DelayEstimate]] = None):
        self.vessel_lookup = {v.vessel_id: v for v in bundle.vessels}
        self.port_lookup = {p.port_id: p for p in bundle.ports}
        self.plant_lookup = {p.plant_id: p for p in bundle.plants}
        self.route_lookup = {(r.port_id, r.plant_id): r for r in bundle.routes}
        self.delay_estimates: Dict[str, DelayEstimate] = dict(delay_estimates or {})
        self.rate_table = self._build_rate_table(bundle.cost_entries)

    @staticmethod
    def _build_rate_table(entries: Iterable[CostEntry]) -> Dict[Tuple[str, str], float]:
        """Latest-effective value per (cost_type, scope)."""
        latest: Dict[Tuple[str, str], CostEntry] = {}
        for entry in entries:
            key = (entry.cost_type, entry.scope)
            current = latest.get(key)
            if current is None or _effective_key(entry) >= _effective_key(current):
                latest[key] = entry
        return {key: float(entry.value) for key, entry in latest.items()}

    def _base_rate(self, cost_type: str, port_id: str, own_rate: Optional[float], default: float) -> float:
        if own_rate is not None and own_rate > 0:
            return float(own_rate)
        for scope in (port_id, GLOBAL_SCOPE):
            rate = self.rate_table.get((cost_type, scope))
            if rate is not None:
                return rate
        return default

    def ocean_rate(self, vessel: Vessel, port_id: str) -> float:
        return self._base_rate("ocean_freight", port_id, vessel.freight_rate_per_mt, DEFAULT_OCEAN_FREIGHT_PER_MT)

    def handling_rate(self, port: Port) -> float:
        benchmark = PORT_BENCHMARKS.get(port.port_id.upper())
        default = benchmark.handling_cost_per_mt if benchmark else DEFAULT_HANDLING_COST_PER_MT
        return self._base_rate("handling", port.port_id, port.handling_cost_per_mt, default)

    def storage_rate(self, port: Port) -> float:
        benchmark = PORT_BENCHMARKS.get(port.port_id.upper())
        default = benchmark.storage_cost_per_mt_per_day if benchmark else DEFAULT_STORAGE_COST_PER_MT_PER_DAY
        return self._base_rate("storage", port.port_id, port.storage_cost_per_mt_per_day, default)

    @staticmethod
    def discharge_rate(port: Port) -> float:
        if port.discharge_rate_mt_per_day and port.discharge_rate_mt_per_day > 0:
            return float(port.discharge_rate_mt_per_day)
        benchmark = PORT_BENCHMARKS.get(port.port_id.upper())
        return benchmark.discharge_rate_mt_per_day if benchmark else DEFAULT_DISCHARGE_RATE_MT_PER_DAY

    def congestion_risk(self, assignment: Assignment) -> float:
        estimate = self.delay_estimates.get(assignment.port_id)
        if estimate is None:
            return assignment.congestion_risk
        return estimate.congestion_risk

    def congestion_multiplier(self, assignment: Assignment) -> float:
        return (
            1.0
            + CONGESTION_RISK_WEIGHT * self.congestion_risk(assignment)
            + CONGESTION_DELAY_WEIGHT * assignment.predicted_delay_days
        )

    def missing_reference(self, assignment: Assignment) -> Optional[str]:
        if assignment.vessel_id not in self.vessel_lookup:
            return f"unknown vessel {assignment.vessel_id}"
        if assignment.port_id not in self.port_lookup:
            return f"unknown port {assignment.port_id}"
        if assignment.plant_id not in self.plant_lookup:
            return f"unknown plant {assignment.plant_id}"
        if assignment.pair not in self.route_lookup:
            return f"no route {assignment.port_id}->{assignment.plant_id}"
        return None

    def breakdown(self, assignment: Assignment, factors: ScenarioFactors) -> CostBreakdown:
        """Cost components of one assignment whose references are known to resolve."""
        vessel = self.vessel_lookup[assignment.vessel_id]
        port = self.port_lookup[assignment.port_id]
        route = self.route_lookup[assignment.pair]
        quantity = assignment.quantity_mt
        multiplier = self.congestion_multiplier(assignment)

        return CostBreakdown(
            ocean_freight=quantity * self.ocean_rate(vessel, port.port_id) * factors.fuel_multiplier,
            handling=quantity * self.handling_rate(port) * multiplier,
            storage=quantity * self.storage_rate(port) * assignment.dwell_days * multiplier,
            rail=quantity * route.rail_cost_per_mt * factors.rail_multiplier * multiplier,
            demurrage=max(0.0, assignment.predicted_delay_days - vessel.laydays) * vessel.demurrage_rate,
        )

    def cost(self, assignments: Sequence[Assignment], factors: Optional[ScenarioFactors] = None) -> CostResult:
        """Total cost and per-assignment breakdown.

        Assignments that reference a missing vessel, port, plant or route are
        excluded from the total; their breakdown slot is ``None`` and a
        ``DataIntegrityError`` is reported for each.
        """
        factors = factors or ScenarioFactors()
        breakdowns: List[Optional[CostBreakdown]] = []
        errors: List[DataIntegrityError] = []
        total = 0.0

        for assignment in assignments:
            problem = self.missing_reference(assignment)
            if problem is not None:
                error = DataIntegrityError("assignment", assignment.vessel_id, problem)
                logger.warning("Excluded from cost: %s", error)
                errors.append(error)
                breakdowns.append(None)
                continue
            breakdown = self.breakdown(assignment, factors)
            breakdowns.append(breakdown)
            total += breakdown.total

        return CostResult(total=total, breakdowns=tuple(breakdowns), integrity_errors=tuple(errors))


def _effective_key(entry: CostEntry):
    # Entries without a date rank before any dated entry
    return (entry.effective_date is not None, entry.effective_date or date.min)


class ScenarioGenerator:
    """Generate what-if overlays. Inputs are never modified in place."""

    @staticmethod
    def delay_scenario(name: str, base: Optional[ScenarioFactors] = None) -> ScenarioFactors:
        base = base or ScenarioFactors()
        key = (name or "").upper()
        if key not in DELAY_SCENARIO_MULTIPLIERS:
            raise ValueError(f"Unknown delay scenario {name!r}; expected one of {sorted(DELAY_SCENARIO_MULTIPLIERS)}")
        return replace(base, delay_multiplier=DELAY_SCENARIO_MULTIPLIERS[key], label=key)

    @staticmethod
    def fuel_shock(pct: float, base: Optional[ScenarioFactors] = None) -> ScenarioFactors:
        base = base or ScenarioFactors()
        return replace(base, fuel_multiplier=base.fuel_multiplier * (1 + pct / 100.0),
                       label=f"{base.label}+fuel{pct:+.0f}%")

    @staticmethod
    def reduce_port_capacity(bundle: DatasetBundle, reduction_pct: float,
                             port_ids: Optional[Iterable[str]] = None) -> DatasetBundle:
        targets = set(port_ids) if port_ids is not None else None
        ports = [
            replace(port, max_capacity_mt=port.max_capacity_mt * (1 - reduction_pct / 100.0))
            if targets is None or port.port_id in targets else port
            for port in bundle.ports
        ]
        return bundle.with_overlay(ports=ports)

    @staticmethod
    def shift_vessel_etas(bundle: DatasetBundle, days: int) -> DatasetBundle:
        vessels = [replace(v, eta=v.eta + timedelta(days=days)) for v in bundle.vessels]
        return bundle.with_overlay(vessels=vessels)


def format_currency(amount: float) -> str:
    """Format currency with appropriate units"""
    if amount is None or (isinstance(amount, float) and np.isnan(amount)):
        amount = 0.0
    value = float(amount)
    sign = "-" if value < 0 else ""
    value = abs(value)

    crore_threshold = 1e7
    lakh_threshold = 1e5

    if value >= crore_threshold:
        return f"{sign}₹{value / crore_threshold:.1f} Cr"
    if value >= lakh_threshold:
        return f"{sign}₹{value / lakh_threshold:.1f} L"
    if value >= 1e3:
        return f"{sign}₹{value:,.0f}"
    return f"{sign}₹{value:.0f}"


def format_tonnage(tonnage: float) -> str:
    """Cargo quantity in K/M metric tons; missing values read as zero"""
    if tonnage is None or (isinstance(tonnage, float) and np.isnan(tonnage)):
        tonnage = 0.0
    value = float(tonnage)
    for scale, suffix in ((1e6, "M"), (1e3, "K")):
        if abs(value) >= scale:
            return f"{value / scale:.1f}{suffix} MT"
    return f"{value:.0f} MT"


def calculate_kpis(solution: Solution, bundle: DatasetBundle,
                   baseline: Optional[Solution] = None,
                   optimization_time_s: float = 0.0) -> Dict[str, float]:
    """Calculate key performance indicators for a final solution"""
    kpis: Dict[str, float] = {}
    assignments = solution.assignments
    port_lookup = {p.port_id: p for p in bundle.ports}
    route_lookup = {(r.port_id, r.plant_id): r for r in bundle.routes}

    kpis['total_cost'] = solution.total_cost
    kpis['fitness'] = solution.fitness
    kpis['baseline_cost'] = baseline.total_cost if baseline is not None else 0.0

    baseline_cost = kpis['baseline_cost']
    if baseline_cost > 0:
        kpis['savings'] = baseline_cost - solution.total_cost
        kpis['savings_pct'] = kpis['savings'] / baseline_cost * 100
    else:
        kpis['savings'] = 0.0
        kpis['savings_pct'] = 0.0

    total_quantity = sum(a.quantity_mt for a in assignments)
    used_ports = {a.port_id for a in assignments if a.port_id in port_lookup}
    used_capacity = sum(port_lookup[pid].max_capacity_mt for pid in used_ports)
    kpis['total_cargo_mt'] = total_quantity
    kpis['capacity_utilization_pct'] = (total_quantity / used_capacity * 100) if used_capacity > 0 else 0.0

    if assignments:
        kpis['avg_predicted_delay_days'] = float(np.mean([a.predicted_delay_days for a in assignments]))
        transit = []
        for a in assignments:
            route = route_lookup.get(a.pair)
            transit.append(a.dwell_days + a.predicted_delay_days + (route.travel_days if route else 0.0))
        kpis['avg_door_to_plant_days'] = float(np.mean(transit))
    else:
        kpis['avg_predicted_delay_days'] = 0.0
        kpis['avg_door_to_plant_days'] = 0.0

    kpis['demurrage_cost'] = sum(a.cost.demurrage for a in assignments if a.cost is not None)
    kpis['constraint_violations'] = float(solution.violations)
    kpis['feasible'] = float(solution.is_feasible)
    kpis['optimization_time_s'] = float(optimization_time_s)
    kpis['vessels_assigned'] = float(len({a.vessel_id for a in assignments}))
    kpis['vessels_unassigned'] = float(len(solution.unassigned_vessels))
    kpis['co2_emissions_t'] = estimate_emissions(assignments, route_lookup)

    return kpis


def estimate_emissions(assignments: Sequence[Assignment], route_lookup: Mapping) -> float:
    """Rough CO2 (t): rail tonne-days plus vessel idle days while waiting to berth."""
    rail = 0.0
    idle = 0.0
    for a in assignments:
        route = route_lookup.get(a.pair)
        if route is not None:
            rail += a.quantity_mt * route.travel_days * RAIL_CO2_T_PER_MT_DAY
        idle += a.predicted_delay_days * IDLE_VESSEL_CO2_T_PER_DAY
    return rail + idle


def schedule_to_frame(solution: Solution, bundle: DatasetBundle) -> pd.DataFrame:
    """Tabular schedule with cost components, one row per assignment."""
    vessel_lookup = {v.vessel_id: v for v in bundle.vessels}
    rows = []
    for a in solution.assignments:
        vessel = vessel_lookup.get(a.vessel_id)
        berth_date = None
        if vessel is not None:
            berth_date = vessel.eta + timedelta(days=float(a.predicted_delay_days))
        row = {
            'vessel_id': a.vessel_id,
            'vessel_name': vessel.name if vessel else None,
            'port_id': a.port_id,
            'plant_id': a.plant_id,
            'quantity_mt': a.quantity_mt,
            'eta': vessel.eta if vessel else None,
            'berth_date': berth_date,
            'dwell_days': a.dwell_days,
            'predicted_delay_days': a.predicted_delay_days,
            'congestion_risk': a.congestion_risk,
        }
        breakdown = a.cost.as_dict() if a.cost is not None else {}
        for key in ('ocean_freight', 'handling', 'storage', 'rail', 'demurrage', 'total'):
            row[f'cost_{key}'] = breakdown.get(key, 0.0)
        rows.append(row)

    columns = [
        'vessel_id', 'vessel_name', 'port_id', 'plant_id', 'quantity_mt', 'eta', 'berth_date',
        'dwell_days', 'predicted_delay_days', 'congestion_risk',
        'cost_ocean_freight', 'cost_handling', 'cost_storage', 'cost_rail', 'cost_demurrage', 'cost_total',
    ]
    return pd.DataFrame(rows, columns=columns)
