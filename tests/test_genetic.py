import pytest

from config import GAConfig
from heuristics import GeneticOptimizer, build_round_robin_baseline
from problem import ProblemContext
from search_control import CancellationToken
from seed_utils import set_global_seed


def test_three_vessel_example(three_vessel_bundle):
    set_global_seed(42, quiet=True)
    context = ProblemContext(three_vessel_bundle)
    solution, report = GeneticOptimizer(context, GAConfig(population_size=10, generations=5)).run()

    assert len(solution.assignments) == 3
    assert solution.violations == 0
    assert solution.penalty == 0
    assert solution.total_cost == pytest.approx(sum(a.cost.total for a in solution.assignments))
    assert report.iterations == 5
    assert len(report.details['evolution_log']) == 6


def test_ga_covers_every_assignable_vessel(sample_context):
    set_global_seed(1, quiet=True)
    solution, report = GeneticOptimizer(sample_context, GAConfig(population_size=20, generations=10)).run()

    assert sorted(a.vessel_id for a in solution.assignments) == sorted(sample_context.assignable_vessels)
    assert report.best_fitness == pytest.approx(solution.fitness)
    assert report.best_fitness <= report.start_fitness


def test_ga_is_reproducible_with_same_seed(sample_context):
    set_global_seed(11, quiet=True)
    first, _ = GeneticOptimizer(sample_context, GAConfig(population_size=16, generations=6)).run()
    set_global_seed(11, quiet=True)
    second, _ = GeneticOptimizer(sample_context, GAConfig(population_size=16, generations=6)).run()
    assert first.choices() == second.choices()


def test_mutation_keeps_genes_feasible(sample_context):
    set_global_seed(3, quiet=True)
    optimizer = GeneticOptimizer(sample_context)
    individual = optimizer._create_individual()
    for _ in range(50):
        (individual,) = optimizer._mutate(individual)
        for vessel_id, port_id, plant_id in individual:
            assert (port_id, plant_id) in sample_context.feasible_pairs[vessel_id]


def test_seed_solution_is_never_lost(sample_context):
    baseline = build_round_robin_baseline(sample_context)
    set_global_seed(5, quiet=True)
    solution, _ = GeneticOptimizer(sample_context, GAConfig(population_size=4, generations=2)).run(
        seed_solution=baseline
    )
    assert solution.fitness <= baseline.fitness


def test_cancelled_ga_returns_complete_solution(sample_context):
    token = CancellationToken()
    token.cancel()
    solution, report = GeneticOptimizer(sample_context, GAConfig(population_size=10, generations=50)).run(
        cancel_token=token
    )
    assert report.cancelled
    assert report.iterations == 1
    assert len(solution.assignments) == len(sample_context.assignable_vessels)


def test_round_robin_baseline_cycles_ports(three_vessel_bundle):
    context = ProblemContext(three_vessel_bundle)
    baseline = build_round_robin_baseline(context)
    assert baseline.stage == 'baseline'
    assert [a.port_id for a in baseline.assignments] == ['P1', 'P2', 'P3']
