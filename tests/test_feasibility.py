from dataclasses import replace
from datetime import date

import pytest

from config import MISSING_VESSEL_PENALTY, PORT_OVERLOAD_PENALTY_PER_MT
from errors import DataIntegrityError
from feasibility import FeasibilityChecker, materials_compatible
from models import Assignment, Plant, SequencingRule, Vessel
from problem import Loads, ProblemContext


def vessel(vessel_id='VX', capacity=50000, grade=None, prior_calls=()):
    return Vessel(vessel_id, vessel_id, capacity, date(2026, 10, 20), 2, 'Test', 10000,
                  cargo_grade=grade, prior_calls=prior_calls)


def test_feasible_pairs_follow_routes(sample_bundle):
    checker = FeasibilityChecker(sample_bundle)
    pairs = checker.feasible_pairs(sample_bundle.vessels[0])
    assert pairs == sorted((r.port_id, r.plant_id) for r in sample_bundle.routes)


def test_pair_issues(sample_bundle):
    checker = FeasibilityChecker(sample_bundle)
    assert checker.pair_issues(vessel(), 'KOL', 'BSP') == ['no route KOL->BSP']
    assert checker.pair_issues(vessel(), 'XXX', 'BSP') == ['unknown port XXX']
    assert 'exceeds port KOL' in ' '.join(checker.pair_issues(vessel(capacity=170000), 'KOL', 'BSL'))
    assert not checker.pair_feasible(vessel(grade='limestone'), 'PAR', 'RSP')


def test_unconnected_plant_is_infeasible(sample_bundle):
    plants = [
        Plant(p.plant_id, p.name, p.required_material, p.max_capacity_mt, rail_connected=p.plant_id != 'BSL')
        for p in sample_bundle.plants
    ]
    checker = FeasibilityChecker(sample_bundle.with_overlay(plants=plants))
    assert ('KOL', 'BSL') not in checker.feasible_pairs(vessel())


def test_materials_compatible():
    assert materials_compatible(None, 'coking_coal')
    assert materials_compatible(' Coking_Coal ', 'coking_coal')
    assert not materials_compatible('limestone', 'coking_coal')


def test_check_quantity_limits(sample_bundle):
    checker = FeasibilityChecker(sample_bundle)
    ok = Assignment('V001', 'PAR', 'RSP', 75000)
    too_much = Assignment('V001', 'PAR', 'RSP', 90000)
    empty = Assignment('V001', 'PAR', 'RSP', 0)

    assert checker.check(ok).feasible
    assert not checker.check(too_much).feasible
    assert not checker.check(empty).feasible
    assert not checker.check(Assignment('NOPE', 'PAR', 'RSP', 100)).feasible


def test_port_overload_penalty(sample_bundle):
    checker = FeasibilityChecker(sample_bundle)
    # KOL has 160000 MT available
    assignments = [
        Assignment('V001', 'KOL', 'BSL', 75000),
        Assignment('V002', 'KOL', 'BSL', 80000),
        Assignment('V005', 'KOL', 'RSP', 70000),
    ]
    report = checker.evaluate(assignments)
    assert report.port_overloads == {'KOL': pytest.approx(65000)}
    assert report.plant_overloads == {}
    assert report.penalty == pytest.approx(65000 * PORT_OVERLOAD_PENALTY_PER_MT)
    assert report.violations == 1


def test_missing_vessels_penalized(sample_bundle):
    checker = FeasibilityChecker(sample_bundle)
    report = checker.evaluate([Assignment('V001', 'PAR', 'RSP', 75000)], expected_vessels=['V001', 'V002'])
    assert report.missing_vessels == ['V002']
    assert report.penalty == pytest.approx(MISSING_VESSEL_PENALTY)


def test_sequencing_rule_counts_prior_calls(sample_bundle):
    first_caller = vessel('VA')
    second_caller = vessel('VB', prior_calls=('HALDIA',))
    bundle = sample_bundle.with_overlay(vessels=[first_caller, second_caller])
    checker = FeasibilityChecker(bundle, rules=[SequencingRule('KOL', call_position=2, penalty=1000)])

    report = checker.evaluate([
        Assignment('VA', 'KOL', 'BSL', 50000),
        Assignment('VB', 'KOL', 'BSL', 50000),
    ])
    assert report.sequence_violations == [('VA', 'KOL', 1)]
    assert report.penalty == pytest.approx(1000)


def test_context_reports_unassignable_vessels(sample_bundle):
    oversize = vessel('BIG', capacity=500000)
    bundle = sample_bundle.with_overlay(vessels=list(sample_bundle.vessels) + [oversize])
    context = ProblemContext(bundle)

    assert context.unassignable_vessels == ['BIG']
    assert 'BIG' not in context.assignable_vessels
    assert context.infeasible_input_error().vessel_ids == ('BIG',)

    solution = context.solution_from_choices([])
    assert 'BIG' in solution.unassigned_vessels


def test_make_assignment_derives_quantity_and_dwell(sample_context):
    assignment = sample_context.make_assignment('V002', 'PAR', 'RSP')
    assert assignment.quantity_mt == 80000
    assert assignment.dwell_days == pytest.approx(80000 / 25000)
    assert assignment.route_id == 'R-PAR-RSP'
    assert assignment.cost is not None
    assert sample_context.make_assignment('V002', 'PAR', 'RSP') is assignment

    with pytest.raises(DataIntegrityError):
        sample_context.make_assignment('V002', 'KOL', 'BSP')


def test_insertion_cost_includes_overload(sample_context):
    assignment = sample_context.make_assignment('V002', 'KOL', 'BSL')
    empty = Loads()
    crowded = Loads.of([sample_context.make_assignment('V001', 'KOL', 'BSL')])
    crowded.port['KOL'] += 40000

    base = sample_context.insertion_cost(empty, assignment)
    assert base == pytest.approx(assignment.cost.total)
    # 75000 + 40000 + 80000 against 160000 available
    assert sample_context.insertion_cost(crowded, assignment) == pytest.approx(
        base + 35000 * PORT_OVERLOAD_PENALTY_PER_MT
    )


def test_capacity_reads_available_space(sample_bundle):
    checker = FeasibilityChecker(sample_bundle)
    # KOL: 180,000 max, 20,000 in stock
    assert checker.pair_feasible(vessel(capacity=150000), 'KOL', 'BSL')

    ports = [replace(p, current_stock_mt=40000) if p.port_id == 'KOL' else p for p in sample_bundle.ports]
    stocked = FeasibilityChecker(sample_bundle.with_overlay(ports=ports))
    issues = stocked.pair_issues(vessel(capacity=150000), 'KOL', 'BSL')
    assert issues == ['vessel capacity 150,000 exceeds port KOL available capacity 140,000']


def test_duplicate_sequencing_rules_rejected(sample_bundle):
    rules = [SequencingRule('KOL', call_position=2, penalty=1000), SequencingRule('KOL', call_position=1, penalty=10)]
    with pytest.raises(ValueError, match='KOL'):
        FeasibilityChecker(sample_bundle, rules=rules)

    with pytest.raises(ValueError, match='KOL'):
        ProblemContext(sample_bundle, rules=rules)
