"""Central configuration for the vessel-port-plant assignment optimizer.

All financial values are expressed in Indian Rupees (INR) unless
explicitly mentioned. Durations are expressed in days.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional


@dataclass(frozen=True)
class PortBenchmark:
    """Fallback cost assumptions for ports that do not publish their own rates."""

    name: str
    handling_cost_per_mt: float  # INR / MT
    storage_cost_per_mt_per_day: float  # INR / MT / day
    discharge_rate_mt_per_day: float


PORT_BENCHMARKS: Dict[str, PortBenchmark] = {
    "KOLKATA": PortBenchmark("Kolkata Port", 145.0, 1.10, 18_000),
    "HALDIA": PortBenchmark("Haldia Dock Complex", 135.0, 1.05, 22_000),
    "PARADIP": PortBenchmark("Paradip Port", 125.0, 0.95, 35_000),
    "VIZAG": PortBenchmark("Visakhapatnam Port", 130.0, 0.95, 30_000),
}

# Rates used when neither the record nor a CostEntry supplies one
DEFAULT_OCEAN_FREIGHT_PER_MT: float = 1_450.0
DEFAULT_HANDLING_COST_PER_MT: float = 130.0
DEFAULT_STORAGE_COST_PER_MT_PER_DAY: float = 1.0
DEFAULT_DISCHARGE_RATE_MT_PER_DAY: float = 20_000.0

# Congestion multiplier: 1 + RISK_WEIGHT * risk + DELAY_WEIGHT * predicted delay
CONGESTION_RISK_WEIGHT: float = 0.2
CONGESTION_DELAY_WEIGHT: float = 0.05

# Constraint penalties
PORT_OVERLOAD_PENALTY_PER_MT: float = 1_000_000.0
PLANT_OVERLOAD_PENALTY_PER_MT: float = 1_000_000.0
SEQUENCE_VIOLATION_PENALTY: float = 5_000_000.0
MISSING_VESSEL_PENALTY: float = 1e10
INFEASIBLE_PAIR_PENALTY: float = 1e10

# Delay predictor
DEFAULT_PORT_RISK_PRIOR: float = 0.3
DELAYED_ARRIVAL_THRESHOLD_DAYS: float = 1.0
DELAY_DAYS_PER_UNIT_RISK: float = 3.0

# Returned for any port that is not part of the graph
FALLBACK_CONGESTION_RISK: float = 0.5
FALLBACK_EXPECTED_DELAY_DAYS: float = 2.0
FALLBACK_CONFIDENCE: float = 0.1

# Emission factors for the KPI summary (t CO2)
RAIL_CO2_T_PER_MT_DAY: float = 0.0022
IDLE_VESSEL_CO2_T_PER_DAY: float = 18.0

# Scenario presets for predicted delays
DELAY_SCENARIO_MULTIPLIERS: Dict[str, float] = {
    "P10": 1.0,
    "P50": 1.25,
    "P90": 1.6,
}

DEFAULT_RANDOM_SEED: int = 42


@dataclass(frozen=True)
class PredictorConfig:
    rounds: int = 3
    mixing_rate: float = 0.5

    def __post_init__(self):
        if self.rounds < 1:
            raise ValueError(f"Propagation rounds must be >= 1, got {self.rounds}")
        if not 0.0 < self.mixing_rate <= 1.0:
            raise ValueError(f"Mixing rate must be in (0, 1], got {self.mixing_rate}")


@dataclass(frozen=True)
class GAConfig:
    population_size: int = 50
    generations: int = 30
    tournament_size: int = 3
    crossover_rate: float = 0.8
    mutation_rate: float = 0.1
    elite_fraction: float = 0.1
    time_limit_s: Optional[float] = None


def _check_loop(iterations: int, checkpoint_interval: int):
    if iterations < 0:
        raise ValueError(f"Iterations must be >= 0, got {iterations}")
    if checkpoint_interval < 1:
        raise ValueError(f"Checkpoint interval must be >= 1, got {checkpoint_interval}")


@dataclass(frozen=True)
class ALNSConfig:
    iterations: int = 1000
    initial_temperature: float = 1000.0
    cooling_rate: float = 0.995
    min_destroy: int = 2
    max_destroy: int = 4
    new_best_reward: float = 3.0
    improvement_reward: float = 1.0
    checkpoint_interval: int = 25
    time_limit_s: Optional[float] = None

    def __post_init__(self):
        _check_loop(self.iterations, self.checkpoint_interval)
        if not 1 <= self.min_destroy <= self.max_destroy:
            raise ValueError(
                f"Destroy size must satisfy 1 <= min_destroy <= max_destroy, got {self.min_destroy}..{self.max_destroy}"
            )


@dataclass(frozen=True)
class TabuConfig:
    iterations: int = 500
    tenure: int = 10
    max_assignments: int = 10  # K
    max_candidate_ports: int = 5  # M
    checkpoint_interval: int = 10
    time_limit_s: Optional[float] = None

    def __post_init__(self):
        _check_loop(self.iterations, self.checkpoint_interval)
        if self.tenure < 1:
            raise ValueError(f"Tabu tenure must be >= 1, got {self.tenure}")


@dataclass(frozen=True)
class OptimizerConfig:
    predictor: PredictorConfig = field(default_factory=PredictorConfig)
    ga: GAConfig = field(default_factory=GAConfig)
    alns: ALNSConfig = field(default_factory=ALNSConfig)
    tabu: TabuConfig = field(default_factory=TabuConfig)
    seed: int = DEFAULT_RANDOM_SEED

    @classmethod
    def from_env(cls) -> "OptimizerConfig":
        """Build a config, letting SYNAPSE_* environment variables override defaults."""
        config = cls()

        seed = _env_int("SYNAPSE_SEED")
        if seed is not None:
            config = replace(config, seed=seed)

        time_limit = _env_float("SYNAPSE_STAGE_TIME_LIMIT_S")

        ga = config.ga
        generations = _env_int("SYNAPSE_GA_GENERATIONS")
        if generations is not None:
            ga = replace(ga, generations=generations)
        if time_limit is not None:
            ga = replace(ga, time_limit_s=time_limit)

        alns = config.alns
        iterations = _env_int("SYNAPSE_ALNS_ITERATIONS")
        if iterations is not None:
            alns = replace(alns, iterations=iterations)
        if time_limit is not None:
            alns = replace(alns, time_limit_s=time_limit)

        tabu = config.tabu
        iterations = _env_int("SYNAPSE_TABU_ITERATIONS")
        if iterations is not None:
            tabu = replace(tabu, iterations=iterations)
        if time_limit is not None:
            tabu = replace(tabu, time_limit_s=time_limit)

        return replace(config, ga=ga, alns=alns, tabu=tabu)


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
