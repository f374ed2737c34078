"""
Tabu Search polishing of the ALNS plan.

Neighborhood: pairwise (port, plant) swaps between the first K assignments and
reassignment of each of those assignments to its first M candidate ports. A
move is identified by the port-id sequence of the plan before and after it.
"""
import logging
from collections import deque
from typing import Deque, List, Optional, Tuple

from config import TabuConfig
from errors import BudgetExceededError, OptimizationCancelled
from models import Assignment, Solution
from problem import ProblemContext
from search_control import CancellationToken, ProgressCallback, SearchMonitor, StageBudget, StageReport

logger = logging.getLogger(__name__)

STAGE_NAME = "Tabu"

MoveKey = Tuple[Tuple[str, ...], Tuple[str, ...]]


class TabuSearchOptimizer:
    def __init__(self, context: ProblemContext, config: Optional[TabuConfig] = None):
        self.context = context
        self.config = config or TabuConfig()
        # Each committed move stores itself and its reverse
        self.tabu_list: Deque[MoveKey] = deque(maxlen=2 * self.config.tenure)

    def is_tabu(self, key: MoveKey) -> bool:
        return key in self.tabu_list

    def _remember(self, key: MoveKey):
        before, after = key
        self.tabu_list.append(key)
        self.tabu_list.append((after, before))

    def candidate_ports(self, vessel_id: str) -> List[str]:
        """Ports with at least one feasible plant for the vessel, first M by id"""
        ports = sorted({port for port, _ in self.context.feasible_pairs.get(vessel_id, [])})
        return ports[:self.config.max_candidate_ports]

    def _reassignment_plant(self, vessel_id: str, port_id: str, plant_id: str) -> Optional[str]:
        """Keep the plant if the new port serves it, else the cheapest feasible plant there"""
        pairs = self.context.feasible_pairs.get(vessel_id, [])
        if (port_id, plant_id) in pairs:
            return plant_id
        plants = [plant for port, plant in pairs if port == port_id]
        if not plants:
            return None
        return min(
            plants,
            key=lambda plant: (self.context.make_assignment(vessel_id, port_id, plant).cost.total, plant),
        )

    def neighbors(self, solution: Solution) -> List[Tuple[MoveKey, Solution]]:
        """All bounded swap and reassignment neighbors of ``solution``, in a fixed order"""
        assignments = list(solution.assignments)
        before = solution.port_sequence()
        head = min(len(assignments), self.config.max_assignments)
        moves: List[List[Assignment]] = []

        for i in range(head):
            for j in range(i + 1, head):
                a, b = assignments[i], assignments[j]
                if a.pair == b.pair:
                    continue
                if b.pair not in self.context.feasible_pairs.get(a.vessel_id, []):
                    continue
                if a.pair not in self.context.feasible_pairs.get(b.vessel_id, []):
                    continue
                swapped = list(assignments)
                swapped[i] = self.context.make_assignment(a.vessel_id, *b.pair)
                swapped[j] = self.context.make_assignment(b.vessel_id, *a.pair)
                moves.append(swapped)

        for i in range(head):
            a = assignments[i]
            for port_id in self.candidate_ports(a.vessel_id):
                if port_id == a.port_id:
                    continue
                plant_id = self._reassignment_plant(a.vessel_id, port_id, a.plant_id)
                if plant_id is None:
                    continue
                moved = list(assignments)
                moved[i] = self.context.make_assignment(a.vessel_id, port_id, plant_id)
                moves.append(moved)

        result = []
        for move in moves:
            neighbor = self.context.build_solution(move, stage=STAGE_NAME)
            result.append(((before, neighbor.port_sequence()), neighbor))
        return result

    def select_move(self, candidates: List[Tuple[MoveKey, Solution]],
                    best_fitness: float) -> Optional[Tuple[MoveKey, Solution, bool]]:
        """Lowest-fitness admissible neighbor as (key, neighbor, was_tabu).

        A tabu move is admissible only when it beats ``best_fitness`` (aspiration).
        """
        chosen = None
        for key, neighbor in candidates:
            tabu = self.is_tabu(key)
            if tabu and neighbor.fitness >= best_fitness:
                continue
            if chosen is None or neighbor.fitness < chosen[1].fitness:
                chosen = (key, neighbor, tabu)
        return chosen

    def run(self, initial: Solution,
            cancel_token: Optional[CancellationToken] = None,
            progress: Optional[ProgressCallback] = None) -> Tuple[Solution, StageReport]:
        """Run Tabu Search from ``initial`` and return the best solution found"""
        cfg = self.config
        logger.info("Running Tabu Search (%d iterations, tenure=%d, K=%d, M=%d)",
                    cfg.iterations, cfg.tenure, cfg.max_assignments, cfg.max_candidate_ports)
        monitor = SearchMonitor(STAGE_NAME, StageBudget(cfg.iterations, cfg.time_limit_s), cancel_token, progress)

        current = initial.copy(stage=STAGE_NAME)
        best = initial.copy(stage=STAGE_NAME)
        self.tabu_list.clear()
        monitor.start(best.fitness)

        moves_made = 0
        aspirated = 0
        stalled = False
        try:
            for iteration in range(1, cfg.iterations + 1):
                chosen = self.select_move(self.neighbors(current), best.fitness)

                if chosen is None:
                    logger.info("No admissible neighbor at iteration %d; stopping", iteration)
                    monitor.report.iterations = iteration - 1
                    stalled = True
                    break

                key, neighbor, was_tabu = chosen
                if was_tabu:
                    aspirated += 1
                self._remember(key)
                current = neighbor
                moves_made += 1

                if current.fitness < best.fitness:
                    best = current.copy()
                    logger.debug("New best solution at iteration %d: %.2f", iteration, best.fitness)

                if iteration % cfg.checkpoint_interval == 0 or iteration == cfg.iterations:
                    monitor.report.best_fitness = best.fitness
                    monitor.checkpoint(iteration, f"Iteration {iteration}/{cfg.iterations}: best {best.fitness:,.0f}")
        except BudgetExceededError as exc:
            monitor.mark_budget_exhausted(exc)
        except OptimizationCancelled:
            monitor.mark_cancelled()

        report = monitor.finish(best.fitness)
        report.details.update({
            "moves_made": moves_made,
            "aspirated_moves": aspirated,
            "stalled": stalled,
            "tabu_list_size": len(self.tabu_list),
        })
        logger.info("Tabu Search completed in %.2fs - Initial: %.2f, Best: %.2f",
                    report.elapsed_s, initial.fitness, best.fitness)
        return best, report
