"""
Genetic Algorithm over vessel -> (port, plant) choices, plus the round-robin
baseline plan used for KPI comparison.
"""
import logging
import random
from typing import Dict, List, Optional, Tuple

import numpy as np
from deap import algorithms, base, creator, tools

from config import GAConfig
from errors import BudgetExceededError, OptimizationCancelled
from models import Solution
from problem import Choice, ProblemContext
from search_control import CancellationToken, ProgressCallback, SearchMonitor, StageBudget, StageReport
from seed_utils import get_current_seed

logger = logging.getLogger(__name__)

STAGE_NAME = "GA"

# Individual representation: list of (vessel_id, port_id, plant_id) genes
if not hasattr(creator, "AssignmentFitness"):
    creator.create("AssignmentFitness", base.Fitness, weights=(-1.0,))
if not hasattr(creator, "AssignmentIndividual"):
    creator.create("AssignmentIndividual", list, fitness=creator.AssignmentFitness)


class GeneticOptimizer:
    """Evolves complete assignment plans with tournament selection and elitism"""

    def __init__(self, context: ProblemContext, config: Optional[GAConfig] = None):
        self.context = context
        self.config = config or GAConfig()
        self.toolbox = self._setup_deap()

    def _setup_deap(self) -> base.Toolbox:
        """Setup DEAP framework for genetic algorithm"""
        toolbox = base.Toolbox()
        toolbox.register("individual", self._create_individual)
        toolbox.register("population", tools.initRepeat, list, toolbox.individual)
        toolbox.register("evaluate", self._evaluate_individual)
        toolbox.register("mate", self._crossover)
        toolbox.register("mutate", self._mutate)
        toolbox.register("select", tools.selTournament, tournsize=self.config.tournament_size)
        return toolbox

    def _create_individual(self):
        """Random feasible (port, plant) pair for every assignable vessel"""
        individual = []
        for vessel_id in self.context.assignable_vessels:
            port_id, plant_id = random.choice(self.context.feasible_pairs[vessel_id])
            individual.append((vessel_id, port_id, plant_id))
        return creator.AssignmentIndividual(individual)

    def _evaluate_individual(self, individual) -> Tuple[float]:
        """Fitness = total cost + constraint penalty"""
        assignments = [self.context.make_assignment(*gene) for gene in individual]
        return (self.context.fitness(assignments),)

    def _crossover(self, ind1, ind2):
        """Single-point crossover over the gene lists"""
        if len(ind1) != len(ind2) or len(ind1) < 2:
            return ind1, ind2
        return tools.cxOnePoint(ind1, ind2)

    def _mutate(self, individual):
        """Move one gene to another feasible port or plant"""
        if len(individual) == 0:
            return (individual,)

        idx = random.randrange(len(individual))
        vessel_id, port_id, plant_id = individual[idx]
        pairs = self.context.feasible_pairs[vessel_id]

        mutation_type = random.choice(['port', 'plant'])
        if mutation_type == 'port':
            candidates = [pair for pair in pairs if pair[0] != port_id]
        else:
            candidates = [pair for pair in pairs if pair[0] == port_id and pair[1] != plant_id]
        if not candidates:
            candidates = [pair for pair in pairs if pair != (port_id, plant_id)]

        if candidates:
            new_port, new_plant = random.choice(candidates)
            individual[idx] = (vessel_id, new_port, new_plant)
        return (individual,)

    def _assignments_to_individual(self, solution: Solution):
        """Convert a solution into GA genes, keeping only assignable vessels"""
        by_vessel: Dict[str, Choice] = {a.vessel_id: a.choice for a in solution.assignments}
        genes = []
        for vessel_id in self.context.assignable_vessels:
            choice = by_vessel.get(vessel_id)
            if choice is None or (choice[1], choice[2]) not in self.context.feasible_pairs[vessel_id]:
                return None
            genes.append(choice)
        return creator.AssignmentIndividual(genes)

    def _evaluate_invalid(self, population):
        invalid = [ind for ind in population if not ind.fitness.valid]
        fitnesses = self.toolbox.map(self.toolbox.evaluate, invalid)
        for ind, fit in zip(invalid, fitnesses):
            ind.fitness.values = fit

    def run(self, seed_solution: Optional[Solution] = None,
            cancel_token: Optional[CancellationToken] = None,
            progress: Optional[ProgressCallback] = None) -> Tuple[Solution, StageReport]:
        """Run genetic algorithm optimization"""
        cfg = self.config
        logger.info("Running Genetic Algorithm (Pop: %d, Gen: %d)", cfg.population_size, cfg.generations)
        monitor = SearchMonitor(
            STAGE_NAME, StageBudget(cfg.generations, cfg.time_limit_s), cancel_token, progress
        )

        if not self.context.assignable_vessels:
            solution = self.context.build_solution([], stage=STAGE_NAME)
            monitor.start(solution.fitness)
            return solution, monitor.finish(solution.fitness)

        population = self.toolbox.population(n=max(2, cfg.population_size))
        if seed_solution is not None:
            seeded = self._assignments_to_individual(seed_solution)
            if seeded is not None:
                population[0] = seeded
            else:
                logger.warning("Seed solution does not cover every assignable vessel; ignoring it")
        self._evaluate_invalid(population)

        hall_of_fame = tools.HallOfFame(1)
        hall_of_fame.update(population)

        stats = tools.Statistics(lambda ind: ind.fitness.values)
        stats.register("avg", np.mean)
        stats.register("min", np.min)
        stats.register("max", np.max)
        logbook = tools.Logbook()
        logbook.header = ["gen", "nevals", "min", "avg", "max"]
        logbook.record(gen=0, nevals=len(population), **stats.compile(population))

        n_elite = max(1, int(round(len(population) * cfg.elite_fraction)))
        monitor.start(hall_of_fame[0].fitness.values[0])

        try:
            for gen in range(1, cfg.generations + 1):
                elites = [self.toolbox.clone(ind) for ind in tools.selBest(population, n_elite)]
                offspring = self.toolbox.select(population, len(population) - n_elite)
                offspring = algorithms.varAnd(offspring, self.toolbox, cfg.crossover_rate, cfg.mutation_rate)
                nevals = sum(1 for ind in offspring if not ind.fitness.valid)
                self._evaluate_invalid(offspring)

                population[:] = elites + offspring
                hall_of_fame.update(population)
                logbook.record(gen=gen, nevals=nevals, **stats.compile(population))

                best_fitness = hall_of_fame[0].fitness.values[0]
                monitor.report.best_fitness = best_fitness
                monitor.checkpoint(gen, f"Generation {gen}/{cfg.generations}: best fitness {best_fitness:,.0f}")
        except BudgetExceededError as exc:
            monitor.mark_budget_exhausted(exc)
        except OptimizationCancelled:
            monitor.mark_cancelled()

        # Recompute the reported cost once more from the winning genes
        best = self.context.solution_from_choices(hall_of_fame[0], stage=STAGE_NAME)
        report = monitor.finish(best.fitness)
        report.details.update({
            "population_size": len(population),
            "generations": cfg.generations,
            "evolution_log": list(logbook),
            "rng_seed": get_current_seed(),
        })

        logger.info("GA completed in %.2fs - Best cost: %.2f (fitness %.2f)",
                    report.elapsed_s, best.total_cost, best.fitness)
        return best, report


def build_round_robin_baseline(context: ProblemContext) -> Solution:
    """Naive plan: vessel i goes to port i mod n, first feasible plant there.

    When the round-robin port has no feasible plant for the vessel, the next
    ports in order are tried.
    """
    port_ids = context.port_ids
    choices: List[Choice] = []
    for idx, vessel_id in enumerate(context.assignable_vessels):
        pairs = context.feasible_pairs[vessel_id]
        for offset in range(len(port_ids)):
            port_id = port_ids[(idx + offset) % len(port_ids)]
            plants = [plant for port, plant in pairs if port == port_id]
            if plants:
                choices.append((vessel_id, port_id, plants[0]))
                break
    return context.solution_from_choices(choices, stage="baseline")
