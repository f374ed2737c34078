"""
Adaptive Large Neighborhood Search refinement of a complete assignment plan.
"""
import logging
import math
import random
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from config import ALNSConfig
from errors import BudgetExceededError, OptimizationCancelled
from models import Assignment, Solution
from problem import Loads, ProblemContext
from search_control import CancellationToken, ProgressCallback, SearchMonitor, StageBudget, StageReport

logger = logging.getLogger(__name__)

STAGE_NAME = "ALNS"

DestroyOperator = Callable[[List[Assignment], int], Tuple[List[Assignment], List[str]]]
RepairOperator = Callable[[List[Assignment], List[str]], List[Assignment]]


class ALNSOptimizer:
    """Destroy/repair search with simulated-annealing acceptance and adaptive operator weights."""

    def __init__(self, context: ProblemContext, config: Optional[ALNSConfig] = None):
        self.context = context
        self.config = config or ALNSConfig()

        self.destroy_operators: List[Tuple[str, DestroyOperator]] = [
            ("random", self._random_removal),
            ("worst", self._worst_removal),
            ("related", self._related_removal),
        ]
        self.repair_operators: List[Tuple[str, RepairOperator]] = [
            ("greedy", self._greedy_insertion),
            ("regret", self._regret_insertion),
        ]
        self.destroy_weights = np.ones(len(self.destroy_operators))
        self.repair_weights = np.ones(len(self.repair_operators))
        self.operator_stats: Dict[str, Dict[str, int]] = {
            name: {"uses": 0, "accepted": 0, "new_best": 0}
            for name, _ in self.destroy_operators + self.repair_operators
        }
        self.temperature = self.config.initial_temperature

    @staticmethod
    def _select_operator(weights: np.ndarray) -> int:
        """Roulette-wheel selection over operator weights"""
        return random.choices(range(len(weights)), weights=weights.tolist(), k=1)[0]

    def _random_removal(self, assignments: List[Assignment], k: int) -> Tuple[List[Assignment], List[str]]:
        picked = set(random.sample(range(len(assignments)), k))
        return self._split(assignments, picked)

    def _worst_removal(self, assignments: List[Assignment], k: int) -> Tuple[List[Assignment], List[str]]:
        """Remove the k assignments with the highest individual cost; ties go to the earlier vessel"""
        ranked = sorted(
            range(len(assignments)),
            key=lambda i: (-_assignment_cost(assignments[i]), self.context.vessel_rank.get(assignments[i].vessel_id, 0)),
        )
        return self._split(assignments, set(ranked[:k]))

    def _related_removal(self, assignments: List[Assignment], k: int) -> Tuple[List[Assignment], List[str]]:
        """Remove a random assignment together with others discharging at the same port"""
        seed_idx = random.randrange(len(assignments))
        seed_port = assignments[seed_idx].port_id
        seed_plant = assignments[seed_idx].plant_id

        same_port = [i for i, a in enumerate(assignments) if i != seed_idx and a.port_id == seed_port]
        random.shuffle(same_port)
        picked = {seed_idx, *same_port[:k - 1]}

        if len(picked) < 2:
            same_plant = [i for i, a in enumerate(assignments) if i not in picked and a.plant_id == seed_plant]
            random.shuffle(same_plant)
            picked.update(same_plant[:k - len(picked)])
        return self._split(assignments, picked)

    @staticmethod
    def _split(assignments: List[Assignment], picked) -> Tuple[List[Assignment], List[str]]:
        kept = [a for i, a in enumerate(assignments) if i not in picked]
        removed = [assignments[i].vessel_id for i in sorted(picked)]
        return kept, removed

    def _insertion_options(self, loads: Loads, vessel_id: str) -> List[Tuple[float, Assignment]]:
        options = []
        for port_id, plant_id in self.context.feasible_pairs.get(vessel_id, []):
            assignment = self.context.make_assignment(vessel_id, port_id, plant_id)
            options.append((self.context.insertion_cost(loads, assignment), assignment))
        options.sort(key=lambda option: (option[0], option[1].port_id, option[1].plant_id))
        return options

    def _greedy_insertion(self, partial: List[Assignment], removed: List[str]) -> List[Assignment]:
        """Repeatedly insert the cheapest feasible (vessel, pair) among pending vessels"""
        result = list(partial)
        loads = Loads.of(result)
        pending = sorted(removed, key=lambda vid: self.context.vessel_rank.get(vid, 0))

        while pending:
            best = None
            for vessel_id in pending:
                options = self._insertion_options(loads, vessel_id)
                if not options:
                    continue
                cost, assignment = options[0]
                key = (cost, self.context.vessel_rank.get(vessel_id, 0))
                if best is None or key < best[0]:
                    best = (key, vessel_id, assignment)
            if best is None:
                break
            _, vessel_id, assignment = best
            result.append(assignment)
            loads.add(assignment)
            pending.remove(vessel_id)
        return result

    def _regret_insertion(self, partial: List[Assignment], removed: List[str]) -> List[Assignment]:
        """Insert first the vessel that loses most by not getting its best pair (regret-2)"""
        result = list(partial)
        loads = Loads.of(result)
        pending = sorted(removed, key=lambda vid: self.context.vessel_rank.get(vid, 0))

        while pending:
            best = None
            for vessel_id in pending:
                options = self._insertion_options(loads, vessel_id)
                if not options:
                    continue
                best_cost = options[0][0]
                regret = options[1][0] - best_cost if len(options) > 1 else math.inf
                key = (-regret, best_cost, self.context.vessel_rank.get(vessel_id, 0))
                if best is None or key < best[0]:
                    best = (key, vessel_id, options[0][1])
            if best is None:
                break
            _, vessel_id, assignment = best
            result.append(assignment)
            loads.add(assignment)
            pending.remove(vessel_id)
        return result

    def _accept(self, candidate_fitness: float, current_fitness: float) -> bool:
        delta = candidate_fitness - current_fitness
        if delta < 0:
            return True
        if self.temperature <= 0:
            return False
        return random.random() < math.exp(-delta / self.temperature)

    def run(self, initial: Solution,
            cancel_token: Optional[CancellationToken] = None,
            progress: Optional[ProgressCallback] = None) -> Tuple[Solution, StageReport]:
        """Run ALNS from ``initial`` and return the best solution found"""
        cfg = self.config
        logger.info("Running ALNS (%d iterations, T0=%.1f, cooling=%.3f)",
                    cfg.iterations, cfg.initial_temperature, cfg.cooling_rate)
        monitor = SearchMonitor(STAGE_NAME, StageBudget(cfg.iterations, cfg.time_limit_s), cancel_token, progress)

        current = initial.copy(stage=STAGE_NAME)
        best = initial.copy(stage=STAGE_NAME)
        self.temperature = cfg.initial_temperature
        monitor.start(best.fitness)

        if len(current.assignments) == 0:
            return best, monitor.finish(best.fitness)

        try:
            for iteration in range(1, cfg.iterations + 1):
                d_idx = self._select_operator(self.destroy_weights)
                r_idx = self._select_operator(self.repair_weights)
                d_name, destroy = self.destroy_operators[d_idx]
                r_name, repair = self.repair_operators[r_idx]
                self.operator_stats[d_name]["uses"] += 1
                self.operator_stats[r_name]["uses"] += 1

                k = min(len(current.assignments), random.randint(cfg.min_destroy, cfg.max_destroy))
                partial, removed = destroy(list(current.assignments), k)
                candidate = self.context.build_solution(repair(partial, removed), stage=STAGE_NAME)

                current, best = self._apply_outcome(d_idx, r_idx, candidate, current, best)

                self.temperature *= cfg.cooling_rate

                if iteration % cfg.checkpoint_interval == 0 or iteration == cfg.iterations:
                    monitor.report.best_fitness = best.fitness
                    monitor.checkpoint(
                        iteration,
                        f"Iteration {iteration}/{cfg.iterations}: best {best.fitness:,.0f}, T={self.temperature:.1f}",
                    )
        except BudgetExceededError as exc:
            monitor.mark_budget_exhausted(exc)
        except OptimizationCancelled:
            monitor.mark_cancelled()

        report = monitor.finish(best.fitness)
        report.details.update({
            "operator_stats": {name: dict(stats) for name, stats in self.operator_stats.items()},
            "destroy_weights": dict(zip((n for n, _ in self.destroy_operators), self.destroy_weights.tolist())),
            "repair_weights": dict(zip((n for n, _ in self.repair_operators), self.repair_weights.tolist())),
            "final_temperature": self.temperature,
        })
        logger.info("ALNS completed in %.2fs - Initial: %.2f, Best: %.2f",
                    report.elapsed_s, initial.fitness, best.fitness)
        return best, report

    def _apply_outcome(self, d_idx: int, r_idx: int, candidate: Solution,
                       current: Solution, best: Solution) -> Tuple[Solution, Solution]:
        """Acceptance and weight update for one destroy/repair trial; returns (current, best).

        +new_best_reward when the candidate is a new global best, +improvement_reward
        when it is an accepted improvement on current only, nothing otherwise.
        """
        if not self._accept(candidate.fitness, current.fitness):
            return current, best

        d_name = self.destroy_operators[d_idx][0]
        r_name = self.repair_operators[r_idx][0]
        improved = candidate.fitness < current.fitness
        self.operator_stats[d_name]["accepted"] += 1
        self.operator_stats[r_name]["accepted"] += 1

        if candidate.fitness < best.fitness:
            best = candidate.copy()
            self._reward(d_idx, r_idx, self.config.new_best_reward)
            self.operator_stats[d_name]["new_best"] += 1
            self.operator_stats[r_name]["new_best"] += 1
            logger.debug("New best solution via %s/%s: %.2f", d_name, r_name, best.fitness)
        elif improved:
            self._reward(d_idx, r_idx, self.config.improvement_reward)
        return candidate, best

    def _reward(self, d_idx: int, r_idx: int, amount: float):
        self.destroy_weights[d_idx] += amount
        self.repair_weights[r_idx] += amount


def _assignment_cost(assignment: Assignment) -> float:
    return assignment.cost.total if assignment.cost is not None else 0.0
