"""Domain records for the vessel -> port -> plant assignment problem.

Every record is an immutable value object. Search stages never mutate a
record; "changing" a solution always builds a new one.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from config import SEQUENCE_VIOLATION_PENALTY

COST_TYPES = ("ocean_freight", "handling", "storage", "other")
GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class Vessel:
    vessel_id: str
    name: str
    capacity_mt: float
    eta: date
    laydays: float
    origin: str
    demurrage_rate: float
    cargo_grade: Optional[str] = None
    freight_rate_per_mt: Optional[float] = None
    prior_calls: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.capacity_mt <= 0:
            raise ValueError(f"Vessel {self.vessel_id} has invalid capacity: {self.capacity_mt}")
        if self.laydays < 0:
            raise ValueError(f"Vessel {self.vessel_id} has negative laydays: {self.laydays}")


@dataclass(frozen=True)
class Port:
    port_id: str
    name: str
    max_capacity_mt: float
    handling_cost_per_mt: Optional[float] = None
    storage_cost_per_mt_per_day: Optional[float] = None
    discharge_rate_mt_per_day: Optional[float] = None
    current_stock_mt: float = 0.0

    @property
    def available_capacity_mt(self) -> float:
        return max(0.0, self.max_capacity_mt - self.current_stock_mt)

    @property
    def utilization(self) -> float:
        if self.max_capacity_mt <= 0:
            return 1.0
        return min(1.0, max(0.0, self.current_stock_mt / self.max_capacity_mt))


@dataclass(frozen=True)
class Plant:
    plant_id: str
    name: str
    required_material: Optional[str]
    max_capacity_mt: float
    rail_connected: bool = True
    current_stock_mt: float = 0.0

    @property
    def available_capacity_mt(self) -> float:
        return max(0.0, self.max_capacity_mt - self.current_stock_mt)

    @property
    def utilization(self) -> float:
        if self.max_capacity_mt <= 0:
            return 1.0
        return min(1.0, max(0.0, self.current_stock_mt / self.max_capacity_mt))


@dataclass(frozen=True)
class Route:
    route_id: str
    port_id: str
    plant_id: str
    rail_cost_per_mt: float
    travel_days: float
    max_capacity_mt: float


@dataclass(frozen=True)
class CostEntry:
    cost_type: str
    scope: str
    value: float
    currency: str = "INR"
    effective_date: Optional[date] = None

    def __post_init__(self):
        if self.cost_type not in COST_TYPES:
            raise ValueError(f"Unknown cost type {self.cost_type!r}; expected one of {COST_TYPES}")


@dataclass(frozen=True)
class DelayRecord:
    """Historical arrival against ETA, annotated with weather and congestion (0-1)."""

    vessel_id: str
    port_id: str
    eta: date
    arrival: date
    weather_severity: float = 0.0
    congestion_level: float = 0.0

    @property
    def delay_days(self) -> float:
        return max(0.0, float((self.arrival - self.eta).days))


@dataclass(frozen=True)
class CostBreakdown:
    ocean_freight: float = 0.0
    handling: float = 0.0
    storage: float = 0.0
    rail: float = 0.0
    demurrage: float = 0.0

    @property
    def total(self) -> float:
        return self.ocean_freight + self.handling + self.storage + self.rail + self.demurrage

    def as_dict(self) -> Dict[str, float]:
        return {
            "ocean_freight": self.ocean_freight,
            "handling": self.handling,
            "storage": self.storage,
            "rail": self.rail,
            "demurrage": self.demurrage,
            "total": self.total,
        }


@dataclass(frozen=True)
class Assignment:
    vessel_id: str
    port_id: str
    plant_id: str
    quantity_mt: float
    dwell_days: float = 0.0
    predicted_delay_days: float = 0.0
    congestion_risk: float = 0.0
    route_id: Optional[str] = None
    cost: Optional[CostBreakdown] = None

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.port_id, self.plant_id)

    @property
    def choice(self) -> Tuple[str, str, str]:
        return (self.vessel_id, self.port_id, self.plant_id)


@dataclass(frozen=True)
class Solution:
    assignments: Tuple[Assignment, ...] = ()
    total_cost: float = 0.0
    penalty: float = 0.0
    violations: int = 0
    unassigned_vessels: Tuple[str, ...] = ()
    stage: str = ""

    @property
    def fitness(self) -> float:
        return self.total_cost + self.penalty

    @property
    def is_feasible(self) -> bool:
        return self.violations == 0

    def copy(self, stage: Optional[str] = None) -> "Solution":
        """Explicit value copy handed across stage boundaries."""
        return replace(
            self,
            assignments=tuple(self.assignments),
            unassigned_vessels=tuple(self.unassigned_vessels),
            stage=self.stage if stage is None else stage,
        )

    def port_sequence(self) -> Tuple[str, ...]:
        return tuple(a.port_id for a in self.assignments)

    def choices(self) -> List[Tuple[str, str, str]]:
        return [a.choice for a in self.assignments]


@dataclass(frozen=True)
class ScenarioFactors:
    fuel_multiplier: float = 1.0
    rail_multiplier: float = 1.0
    delay_multiplier: float = 1.0
    label: str = "base"


@dataclass(frozen=True)
class SequencingRule:
    """Port ``port_id`` may only be the ``call_position``-th call (1-based) of a vessel.

    A vessel's call sequence is its ``prior_calls`` followed by its
    assignments in solution order.
    """

    port_id: str
    call_position: int
    penalty: float = SEQUENCE_VIOLATION_PENALTY

    def __post_init__(self):
        if self.call_position < 1:
            raise ValueError(f"call_position must be >= 1, got {self.call_position}")


@dataclass(frozen=True)
class DatasetBundle:
    vessels: Tuple[Vessel, ...] = ()
    ports: Tuple[Port, ...] = ()
    plants: Tuple[Plant, ...] = ()
    routes: Tuple[Route, ...] = ()
    cost_entries: Tuple[CostEntry, ...] = ()
    delay_records: Tuple[DelayRecord, ...] = ()

    def with_overlay(self, **collections: Iterable) -> "DatasetBundle":
        return replace(self, **{key: tuple(value) for key, value in collections.items()})

    @classmethod
    def from_frames(cls, data: Dict[str, pd.DataFrame]) -> "DatasetBundle":
        """Build a bundle from already-validated DataFrames keyed by collection name."""
        vessels = tuple(
            Vessel(
                vessel_id=str(row["vessel_id"]).strip(),
                name=str(row.get("name", row["vessel_id"])),
                capacity_mt=float(row["capacity_mt"]),
                eta=_to_date(row["eta"]),
                laydays=float(_optional(row, "laydays") or 0.0),
                origin=str(_optional(row, "origin") or ""),
                demurrage_rate=float(_optional(row, "demurrage_rate") or 0.0),
                cargo_grade=_optional_str(row, "cargo_grade"),
                freight_rate_per_mt=_optional_float(row, "freight_rate_per_mt"),
                prior_calls=_split_ids(_optional(row, "prior_calls")),
            )
            for row in _records(data, "vessels")
        )
        ports = tuple(
            Port(
                port_id=str(row["port_id"]).strip(),
                name=str(row.get("name", row["port_id"])),
                max_capacity_mt=float(row["max_capacity_mt"]),
                handling_cost_per_mt=_optional_float(row, "handling_cost_per_mt"),
                storage_cost_per_mt_per_day=_optional_float(row, "storage_cost_per_mt_per_day"),
                discharge_rate_mt_per_day=_optional_float(row, "discharge_rate_mt_per_day"),
                current_stock_mt=float(_optional(row, "current_stock_mt") or 0.0),
            )
            for row in _records(data, "ports")
        )
        plants = tuple(
            Plant(
                plant_id=str(row["plant_id"]).strip(),
                name=str(row.get("name", row["plant_id"])),
                required_material=_optional_str(row, "required_material"),
                max_capacity_mt=float(row["max_capacity_mt"]),
                rail_connected=bool(_optional(row, "rail_connected", True)),
                current_stock_mt=float(_optional(row, "current_stock_mt") or 0.0),
            )
            for row in _records(data, "plants")
        )
        routes = tuple(
            Route(
                route_id=str(row["route_id"]).strip(),
                port_id=str(row["port_id"]).strip(),
                plant_id=str(row["plant_id"]).strip(),
                rail_cost_per_mt=float(row["rail_cost_per_mt"]),
                travel_days=float(_optional(row, "travel_days") or 0.0),
                max_capacity_mt=float(row["max_capacity_mt"]),
            )
            for row in _records(data, "routes")
        )
        cost_entries = tuple(
            CostEntry(
                cost_type=str(row["cost_type"]).strip().lower(),
                scope=str(_optional(row, "scope") or GLOBAL_SCOPE).strip(),
                value=float(row["value"]),
                currency=str(_optional(row, "currency") or "INR"),
                effective_date=_to_date(row["effective_date"]) if _optional(row, "effective_date") is not None else None,
            )
            for row in _records(data, "cost_entries")
        )
        delay_records = tuple(
            DelayRecord(
                vessel_id=str(row["vessel_id"]).strip(),
                port_id=str(row["port_id"]).strip(),
                eta=_to_date(row["eta"]),
                arrival=_to_date(row["arrival"]),
                weather_severity=float(_optional(row, "weather_severity") or 0.0),
                congestion_level=float(_optional(row, "congestion_level") or 0.0),
            )
            for row in _records(data, "delay_records")
        )
        return cls(vessels, ports, plants, routes, cost_entries, delay_records)


def _records(data: Dict[str, pd.DataFrame], key: str) -> List[Dict]:
    frame = data.get(key)
    if frame is None or frame.empty:
        return []
    return frame.to_dict("records")


def _optional(row: Dict, key: str, default=None):
    value = row.get(key, default)
    if value is None:
        return default
    if isinstance(value, float) and pd.isna(value):
        return default
    return value


def _optional_float(row: Dict, key: str) -> Optional[float]:
    value = _optional(row, key)
    return None if value is None else float(value)


def _optional_str(row: Dict, key: str) -> Optional[str]:
    value = _optional(row, key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _split_ids(value) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set)):
        return tuple(str(tok).strip() for tok in value if str(tok).strip())
    return tuple(tok.strip() for tok in re.split(r"[|;,]+", str(value)) if tok.strip())


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()
