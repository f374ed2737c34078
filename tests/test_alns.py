import pytest

import alns
from alns import ALNSOptimizer
from config import ALNSConfig, GAConfig
from heuristics import GeneticOptimizer, build_round_robin_baseline
from models import Assignment, CostBreakdown, Solution
from search_control import CancellationToken
from seed_utils import set_global_seed


@pytest.fixture
def ga_solution(sample_context):
    set_global_seed(21, quiet=True)
    solution, _ = GeneticOptimizer(sample_context, GAConfig(population_size=10, generations=3)).run()
    return solution


def test_alns_never_worse_than_input(sample_context, ga_solution):
    best, report = ALNSOptimizer(sample_context, ALNSConfig(iterations=80)).run(ga_solution)

    assert best.fitness <= ga_solution.fitness
    assert report.iterations == 80
    assert sorted(a.vessel_id for a in best.assignments) == sorted(sample_context.assignable_vessels)


def test_alns_improves_round_robin_plan(sample_context):
    baseline = build_round_robin_baseline(sample_context)
    set_global_seed(4, quiet=True)
    best, _ = ALNSOptimizer(sample_context, ALNSConfig(iterations=150)).run(baseline)
    assert best.fitness <= baseline.fitness
    assert best.violations == 0


def test_operator_statistics_and_weights(sample_context, ga_solution):
    set_global_seed(9, quiet=True)
    optimizer = ALNSOptimizer(sample_context, ALNSConfig(iterations=50))
    _, report = optimizer.run(ga_solution)

    stats = report.details['operator_stats']
    assert sum(stats[name]['uses'] for name in ('random', 'worst', 'related')) == 50
    assert sum(stats[name]['uses'] for name in ('greedy', 'regret')) == 50
    assert all(weight >= 1.0 for weight in optimizer.destroy_weights)
    assert report.details['final_temperature'] == pytest.approx(1000.0 * 0.995 ** 50)


def test_destroy_operators_remove_k_assignments(sample_context, ga_solution):
    set_global_seed(2, quiet=True)
    optimizer = ALNSOptimizer(sample_context)
    assignments = list(ga_solution.assignments)

    for name, destroy in optimizer.destroy_operators:
        kept, removed = destroy(assignments, 3)
        assert len(kept) + len(removed) == len(assignments)
        assert 1 <= len(removed) <= 3
        if name != 'related':
            assert len(removed) == 3


def test_repair_reinserts_every_removed_vessel(sample_context, ga_solution):
    set_global_seed(8, quiet=True)
    optimizer = ALNSOptimizer(sample_context)
    kept, removed = optimizer._random_removal(list(ga_solution.assignments), 4)

    for _, repair in optimizer.repair_operators:
        repaired = repair(kept, removed)
        assert sorted(a.vessel_id for a in repaired) == sorted(a.vessel_id for a in ga_solution.assignments)


def test_greedy_repair_picks_cheapest_pair(three_vessel_bundle):
    from problem import ProblemContext

    context = ProblemContext(three_vessel_bundle)
    optimizer = ALNSOptimizer(context)
    repaired = optimizer._greedy_insertion([], ['V3'])

    assert len(repaired) == 1
    # P1 -> L1 has the cheapest rail leg
    assert repaired[0].pair == ('P1', 'L1')


def test_cancellation_keeps_last_committed_best(sample_context, ga_solution):
    token = CancellationToken()
    seen = []

    def progress(percent, description):
        seen.append(percent)
        if percent > 0:
            token.cancel()

    best, report = ALNSOptimizer(sample_context, ALNSConfig(iterations=500, checkpoint_interval=10)).run(
        ga_solution, cancel_token=token, progress=progress
    )

    assert report.cancelled
    assert report.iterations == 10
    assert best.fitness <= ga_solution.fitness
    assert len(best.assignments) == len(ga_solution.assignments)
    assert seen == sorted(seen)


def test_time_budget_ends_stage_with_best(sample_context, ga_solution):
    best, report = ALNSOptimizer(
        sample_context, ALNSConfig(iterations=100000, checkpoint_interval=5, time_limit_s=0.0)
    ).run(ga_solution)

    assert report.budget_exhausted
    assert report.budget_error is not None
    assert report.iterations == 5
    assert best.fitness <= ga_solution.fitness


def costed(vessel_id, total):
    return Assignment(vessel_id, 'PAR', 'RSP', 50000, cost=CostBreakdown(ocean_freight=total))


def test_worst_removal_takes_costliest(sample_context):
    optimizer = ALNSOptimizer(sample_context)
    assignments = [costed('V001', 500), costed('V002', 900), costed('V003', 900), costed('V004', 100)]

    for _ in range(5):
        kept, removed = optimizer._worst_removal(assignments, 2)
        assert removed == ['V002', 'V003']
        assert [a.vessel_id for a in kept] == ['V001', 'V004']

    # equal cost: the earlier-arriving vessel goes first
    _, removed = optimizer._worst_removal(assignments, 1)
    assert removed == ['V002']


def test_weight_rewards_per_outcome(sample_context, monkeypatch):
    optimizer = ALNSOptimizer(sample_context)

    # new global best: +3 to both operators
    current, best = optimizer._apply_outcome(0, 0, Solution(total_cost=90), Solution(total_cost=100),
                                             Solution(total_cost=100))
    assert (current.fitness, best.fitness) == (90, 90)

    # better than current but not than best: +1
    current, best = optimizer._apply_outcome(1, 1, Solution(total_cost=110), Solution(total_cost=120), best)
    assert (current.fitness, best.fitness) == (110, 90)

    # accepted worse move: no reward
    optimizer.temperature = 1e9
    monkeypatch.setattr(alns.random, 'random', lambda: 0.0)
    current, best = optimizer._apply_outcome(2, 0, Solution(total_cost=130), current, best)
    assert (current.fitness, best.fitness) == (130, 90)

    # rejected move: no reward, current kept
    optimizer.temperature = 0.0
    current, best = optimizer._apply_outcome(2, 1, Solution(total_cost=200), current, best)
    assert (current.fitness, best.fitness) == (130, 90)

    assert optimizer.destroy_weights.tolist() == [4.0, 2.0, 1.0]
    assert optimizer.repair_weights.tolist() == [4.0, 2.0]
    assert optimizer.operator_stats['random'] == {'uses': 0, 'accepted': 1, 'new_best': 1}
    assert optimizer.operator_stats['related'] == {'uses': 0, 'accepted': 1, 'new_best': 0}
    assert optimizer.operator_stats['regret'] == {'uses': 0, 'accepted': 1, 'new_best': 0}


@pytest.mark.parametrize('overrides', [
    {'checkpoint_interval': 0},
    {'iterations': -1},
    {'min_destroy': 5, 'max_destroy': 3},
    {'min_destroy': 0},
])
def test_invalid_alns_config_rejected(overrides):
    with pytest.raises(ValueError):
        ALNSConfig(**overrides)


def test_zero_iterations_returns_input(sample_context, ga_solution):
    best, report = ALNSOptimizer(sample_context, ALNSConfig(iterations=0)).run(ga_solution)
    assert best.fitness == ga_solution.fitness
    assert report.iterations == 0
