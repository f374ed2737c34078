"""
Graph-based delay predictor for discharge ports.

Builds a bipartite port/plant graph from the route table and propagates
capacity, utilization and congestion features across it for a fixed number
of rounds. A lightweight message-passing heuristic: no trained weights, no
randomness, rebuilt from scratch on every run.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from sklearn.preprocessing import MinMaxScaler

from config import (
    DEFAULT_PORT_RISK_PRIOR,
    DELAY_DAYS_PER_UNIT_RISK,
    DELAYED_ARRIVAL_THRESHOLD_DAYS,
    FALLBACK_CONFIDENCE,
    FALLBACK_CONGESTION_RISK,
    FALLBACK_EXPECTED_DELAY_DAYS,
    PredictorConfig,
)
from errors import DataIntegrityError
from models import DatasetBundle, DelayRecord

logger = logging.getLogger(__name__)

CAPACITY, UTILIZATION, RISK = 0, 1, 2


@dataclass(frozen=True)
class DelayEstimate:
    congestion_risk: float
    expected_delay_days: float
    confidence: float


FALLBACK_ESTIMATE = DelayEstimate(
    congestion_risk=FALLBACK_CONGESTION_RISK,
    expected_delay_days=FALLBACK_EXPECTED_DELAY_DAYS,
    confidence=FALLBACK_CONFIDENCE,
)


class DelayPredictor:
    """Message-passing congestion and delay estimator over the port/plant graph"""

    def __init__(self, bundle: DatasetBundle, config: Optional[PredictorConfig] = None):
        self.config = config or PredictorConfig()
        self.bundle = bundle
        self.integrity_errors: List[DataIntegrityError] = []

        self.port_ids = sorted(p.port_id for p in bundle.ports)
        self.plant_ids = sorted(p.plant_id for p in bundle.plants)
        self.node_ids = [f"port:{pid}" for pid in self.port_ids] + [f"plant:{pid}" for pid in self.plant_ids]
        self.node_index = {node: idx for idx, node in enumerate(self.node_ids)}

        self.adjacency = np.zeros((len(self.node_ids), len(self.node_ids)))
        self.degree = np.zeros(len(self.node_ids), dtype=int)
        self.history = self._aggregate_history(bundle.delay_records)
        self.prior = np.zeros(len(self.node_ids))
        self.features = np.zeros((len(self.node_ids), 3))
        self.is_built = False
        self.rounds_run = 0

    def build_graph(self) -> "DelayPredictor":
        """Create node features and the weighted adjacency matrix."""
        port_lookup = {p.port_id: p for p in self.bundle.ports}
        plant_lookup = {p.plant_id: p for p in self.bundle.plants}

        for route in self.bundle.routes:
            src = self.node_index.get(f"port:{route.port_id}")
            dst = self.node_index.get(f"plant:{route.plant_id}")
            if src is None or dst is None:
                missing = route.port_id if src is None else route.plant_id
                self._record_integrity_error("route", route.route_id, f"references unknown node {missing}")
                continue
            weight = 1.0 / (1.0 + max(0.0, route.rail_cost_per_mt))
            # Parallel routes between the same pair accumulate weight
            self.adjacency[src, dst] += weight
            self.adjacency[dst, src] += weight

        self.degree = (self.adjacency > 0).sum(axis=1)

        capacities = np.zeros((len(self.node_ids), 1))
        utilization = np.zeros(len(self.node_ids))
        for port_id in self.port_ids:
            idx = self.node_index[f"port:{port_id}"]
            port = port_lookup[port_id]
            capacities[idx, 0] = port.max_capacity_mt
            utilization[idx] = port.utilization
            self.prior[idx] = self._port_risk_prior(port_id)
        for plant_id in self.plant_ids:
            idx = self.node_index[f"plant:{plant_id}"]
            plant = plant_lookup[plant_id]
            capacities[idx, 0] = plant.max_capacity_mt
            utilization[idx] = plant.utilization
            self.prior[idx] = 0.5 * plant.utilization

        if len(self.node_ids):
            scaled_capacity = MinMaxScaler().fit_transform(capacities)[:, 0]
        else:
            scaled_capacity = np.zeros(0)

        self.features = np.column_stack([scaled_capacity, utilization, self.prior]) if len(self.node_ids) else np.zeros((0, 3))
        self.is_built = True
        self.rounds_run = 0
        logger.info(
            "Delay graph built: %d ports, %d plants, %d edges",
            len(self.port_ids), len(self.plant_ids), int((self.adjacency > 0).sum() // 2),
        )
        return self

    def propagate(self, rounds: Optional[int] = None) -> np.ndarray:
        """Run synchronous neighbor-averaging rounds and return the final features."""
        if not self.is_built:
            self.build_graph()
        rounds = self.config.rounds if rounds is None else rounds
        if rounds < 1:
            raise ValueError(f"Propagation rounds must be >= 1, got {rounds}")

        alpha = self.config.mixing_rate
        weight_sums = self.adjacency.sum(axis=1)
        has_neighbors = weight_sums > 0
        features = self.features.copy()

        for _ in range(rounds):
            neighbor_mean = np.zeros_like(features)
            neighbor_mean[has_neighbors] = (
                self.adjacency[has_neighbors] @ features
            ) / weight_sums[has_neighbors, None]
            # Isolated nodes keep their own features
            neighbor_mean[~has_neighbors] = features[~has_neighbors]
            features = features + alpha * (neighbor_mean - features)

        self.features = features
        self.rounds_run += rounds
        return features

    def predict(self, port_id: str) -> DelayEstimate:
        """Congestion risk, expected delay (days) and confidence for a port."""
        idx = self.node_index.get(f"port:{port_id}")
        if idx is None or not self.is_built:
            return FALLBACK_ESTIMATE

        final = self.features[idx]
        prior = self.prior[idx]
        risk = float(np.clip(0.5 * final[RISK] + 0.3 * final[UTILIZATION] + 0.2 * prior, 0.0, 1.0))

        stats = self.history.get(port_id)
        base_delay = stats["mean_delay_days"] if stats else 0.0
        expected_delay = max(0.0, base_delay + DELAY_DAYS_PER_UNIT_RISK * risk)

        n_records = stats["records"] if stats else 0
        history_weight = n_records / (n_records + 10.0)
        connectivity = min(int(self.degree[idx]), 3) / 3.0
        confidence = float(np.clip(0.3 + 0.5 * history_weight + 0.2 * connectivity, 0.0, 1.0))

        return DelayEstimate(
            congestion_risk=risk,
            expected_delay_days=float(expected_delay),
            confidence=confidence,
        )

    def predict_all(self) -> Dict[str, DelayEstimate]:
        return {port_id: self.predict(port_id) for port_id in self.port_ids}

    def _port_risk_prior(self, port_id: str) -> float:
        stats = self.history.get(port_id)
        if not stats:
            return DEFAULT_PORT_RISK_PRIOR
        prior = 0.5 * stats["mean_congestion"] + 0.5 * stats["delayed_share"]
        return float(np.clip(prior, 0.0, 1.0))

    def _aggregate_history(self, records: Iterable[DelayRecord]) -> Dict[str, Dict[str, float]]:
        known_ports = set(self.port_ids)
        rows = []
        for record in records:
            if record.port_id not in known_ports:
                self._record_integrity_error(
                    "delay_record", record.vessel_id, f"references unknown port {record.port_id}"
                )
                continue
            rows.append({
                "port_id": record.port_id,
                "delay_days": record.delay_days,
                "congestion_level": float(np.clip(record.congestion_level, 0.0, 1.0)),
                "delayed": record.delay_days > DELAYED_ARRIVAL_THRESHOLD_DAYS,
            })

        if not rows:
            return {}

        history_df = pd.DataFrame(rows)
        grouped = history_df.groupby("port_id").agg(
            records=("delay_days", "size"),
            mean_delay_days=("delay_days", "mean"),
            mean_congestion=("congestion_level", "mean"),
            delayed_share=("delayed", "mean"),
        )
        return {
            port_id: {key: float(value) for key, value in row.items()}
            for port_id, row in grouped.to_dict("index").items()
        }

    def _record_integrity_error(self, kind: str, record_id: str, detail: str):
        error = DataIntegrityError(kind, record_id, detail)
        logger.warning("Skipping record: %s", error)
        self.integrity_errors.append(error)
