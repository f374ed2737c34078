from dataclasses import replace
from datetime import date

import pytest

from config import OptimizerConfig
from errors import ConcurrentRunError, InfeasibleInputError
from models import SequencingRule, Vessel
from orchestrator import OptimizationOrchestrator, PipelineState
from search_control import CancellationToken
from utils import ScenarioGenerator


def test_full_pipeline_on_sample(sample_bundle, fast_config):
    events = []
    orchestrator = OptimizationOrchestrator(fast_config)
    result = orchestrator.run(sample_bundle, progress=events.append)

    assert result.state == PipelineState.COMPLETE
    assert result.is_complete
    assert orchestrator.state == PipelineState.COMPLETE
    assert not orchestrator.is_running
    assert result.solution.violations == 0
    assert result.unassigned_vessels == ()
    assert len(result.solution.assignments) == len(sample_bundle.vessels)
    assert result.kpis['constraint_violations'] == 0
    assert result.kpis['total_cost'] == pytest.approx(result.solution.total_cost)
    assert result.kpis['baseline_cost'] == pytest.approx(result.baseline.total_cost)
    assert set(result.delay_estimates) == {'KOL', 'PAR', 'VIZ'}

    assert orchestrator.state_history == [
        PipelineState.IDLE,
        PipelineState.BUILDING_GRAPH,
        PipelineState.PREDICTING_DELAYS,
        PipelineState.RUNNING_GA,
        PipelineState.RUNNING_ALNS,
        PipelineState.RUNNING_TABU,
        PipelineState.COMPLETE,
    ]

    overall = [event.overall_percent for event in events]
    assert overall == sorted(overall)
    assert overall[-1] == 100.0
    for stage in {event.stage for event in events}:
        percents = [event.percent for event in events if event.stage == stage]
        assert percents == sorted(percents)


def test_capacity_respected_in_zero_violation_output(sample_bundle, fast_config):
    result = OptimizationOrchestrator(fast_config).run(sample_bundle)
    assert result.solution.violations == 0

    ports = {p.port_id: p for p in sample_bundle.ports}
    for port_id, port in ports.items():
        used = sum(a.quantity_mt for a in result.solution.assignments if a.port_id == port_id)
        assert used <= port.max_capacity_mt


def test_stages_never_worsen(sample_bundle, fast_config):
    result = OptimizationOrchestrator(fast_config).run(sample_bundle)
    reports = result.stage_reports

    assert reports['ALNS'].best_fitness <= reports['GA'].best_fitness
    assert reports['Tabu'].best_fitness <= reports['ALNS'].best_fitness
    assert result.solution.fitness == pytest.approx(reports['Tabu'].best_fitness)


def test_same_seed_same_result(sample_bundle, fast_config):
    orchestrator = OptimizationOrchestrator(fast_config)
    first = orchestrator.run(sample_bundle)
    second = orchestrator.run(sample_bundle)
    assert first.solution.choices() == second.solution.choices()
    assert first.solution.total_cost == second.solution.total_cost


def test_oversize_vessel_reported_unassigned(sample_bundle, fast_config):
    giant = Vessel('V999', 'MV Colossus', 400000, date(2026, 10, 24), 3, 'Port Hedland', 30000)
    bundle = sample_bundle.with_overlay(vessels=list(sample_bundle.vessels) + [giant])

    result = OptimizationOrchestrator(fast_config).run(bundle)

    assert result.state == PipelineState.COMPLETE
    assert 'V999' in result.unassigned_vessels
    assert all(a.vessel_id != 'V999' for a in result.solution.assignments)
    assert any(isinstance(issue, InfeasibleInputError) for issue in result.issues)
    assert result.kpis['vessels_unassigned'] == 1


def test_concurrent_run_is_rejected(sample_bundle, fast_config):
    orchestrator = OptimizationOrchestrator(fast_config)
    rejections = []

    def progress(event):
        if not rejections:
            with pytest.raises(ConcurrentRunError):
                orchestrator.run(sample_bundle)
            rejections.append(event.stage)

    result = orchestrator.run(sample_bundle, progress=progress)

    assert rejections
    assert result.state == PipelineState.COMPLETE


def test_cancel_during_alns_returns_committed_best(sample_bundle, fast_config):
    orchestrator = OptimizationOrchestrator(fast_config)
    token = CancellationToken()

    def progress(event):
        if event.stage == PipelineState.RUNNING_ALNS.value and event.percent > 0:
            orchestrator.cancel()

    result = orchestrator.run(sample_bundle, progress=progress, cancel_token=token)

    assert token.cancelled
    assert result.state == PipelineState.CANCELLED
    assert 'Tabu' not in result.stage_reports
    assert result.stage_reports['ALNS'].cancelled
    assert result.solution.fitness <= result.stage_reports['GA'].best_fitness
    assert len(result.solution.assignments) == len(sample_bundle.vessels)
    assert not orchestrator.is_running


def test_failure_moves_to_failed_state(sample_bundle, fast_config):
    orchestrator = OptimizationOrchestrator(fast_config)

    def progress(event):
        if event.stage == PipelineState.RUNNING_GA.value:
            raise RuntimeError("presentation layer crashed")

    with pytest.raises(RuntimeError):
        orchestrator.run(sample_bundle, progress=progress)

    assert orchestrator.state == PipelineState.FAILED
    assert not orchestrator.is_running


def test_sequencing_rule_and_scenario_factors(sample_bundle, fast_config):
    # Kolkata may only be a second call; only V001 and V002 already called elsewhere
    vessels = [
        replace(v, prior_calls=('HALDIA',)) if v.vessel_id in ('V001', 'V002') else v
        for v in sample_bundle.vessels
    ]
    bundle = sample_bundle.with_overlay(vessels=vessels)
    rules = [SequencingRule('KOL', call_position=2, penalty=1e10)]
    factors = ScenarioGenerator.delay_scenario('P90')

    result = OptimizationOrchestrator(fast_config).run(bundle, factors=factors, rules=rules)

    assert result.solution.violations == 0
    assert all(a.port_id != 'KOL' or a.vessel_id in ('V001', 'V002') for a in result.solution.assignments)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv('SYNAPSE_SEED', '99')
    monkeypatch.setenv('SYNAPSE_ALNS_ITERATIONS', '12')
    monkeypatch.setenv('SYNAPSE_STAGE_TIME_LIMIT_S', '2.5')

    config = OptimizerConfig.from_env()
    assert config.seed == 99
    assert config.alns.iterations == 12
    assert config.ga.time_limit_s == 2.5
    assert config.tabu.time_limit_s == 2.5

    monkeypatch.setenv('SYNAPSE_GA_GENERATIONS', 'many')
    with pytest.raises(ValueError):
        OptimizerConfig.from_env()
