import numpy as np
import pytest

from config import PredictorConfig
from delay_predictor import FALLBACK_ESTIMATE, DelayPredictor
from models import Port, Route


def test_prediction_is_deterministic(sample_bundle):
    first = DelayPredictor(sample_bundle, PredictorConfig(rounds=4)).build_graph()
    first.propagate()
    second = DelayPredictor(sample_bundle, PredictorConfig(rounds=4)).build_graph()
    second.propagate()

    for port_id, estimate in first.predict_all().items():
        other = second.predict(port_id)
        assert estimate.expected_delay_days == other.expected_delay_days
        assert estimate.congestion_risk == other.congestion_risk


def test_estimates_are_bounded(sample_estimates):
    assert set(sample_estimates) == {'KOL', 'PAR', 'VIZ'}
    for estimate in sample_estimates.values():
        assert 0.0 <= estimate.congestion_risk <= 1.0
        assert estimate.expected_delay_days >= 0.0
        assert 0.0 <= estimate.confidence <= 1.0


def test_unknown_port_gets_fallback(sample_bundle):
    predictor = DelayPredictor(sample_bundle).build_graph()
    assert predictor.predict('NOWHERE') == FALLBACK_ESTIMATE


def test_unbuilt_graph_gets_fallback(sample_bundle):
    assert DelayPredictor(sample_bundle).predict('KOL') == FALLBACK_ESTIMATE


def test_history_drives_port_prior(sample_bundle):
    predictor = DelayPredictor(sample_bundle)
    stats = predictor.history['KOL']
    assert stats['records'] == 3
    assert stats['mean_delay_days'] == pytest.approx(5 / 3)
    assert stats['delayed_share'] == pytest.approx(2 / 3)
    assert predictor._port_risk_prior('KOL') == pytest.approx(0.5 * 0.6 + 0.5 * 2 / 3)


def test_more_history_and_links_raise_confidence(sample_bundle):
    predictor = DelayPredictor(sample_bundle).build_graph()
    predictor.propagate()
    # KOL has three delay records, PAR two
    assert predictor.predict('KOL').confidence > predictor.predict('PAR').confidence


def test_routes_to_unknown_nodes_are_skipped(sample_bundle):
    bundle = sample_bundle.with_overlay(
        routes=list(sample_bundle.routes) + [Route('R-BAD', 'KOL', 'GHOST', 500, 2, 90000)]
    )
    predictor = DelayPredictor(bundle).build_graph()

    assert len(predictor.integrity_errors) == 1
    assert predictor.integrity_errors[0].record_id == 'R-BAD'
    assert int((predictor.adjacency > 0).sum() // 2) == len(sample_bundle.routes)


def test_isolated_port_keeps_its_features(sample_bundle):
    bundle = sample_bundle.with_overlay(
        ports=list(sample_bundle.ports) + [Port('HAL', 'Haldia', 120000, current_stock_mt=60000)]
    )
    predictor = DelayPredictor(bundle).build_graph()
    idx = predictor.node_index['port:HAL']
    before = predictor.features[idx].copy()

    predictor.propagate(rounds=5)

    np.testing.assert_allclose(predictor.features[idx], before)
    assert predictor.rounds_run == 5


def test_invalid_rounds_rejected(sample_bundle):
    with pytest.raises(ValueError):
        PredictorConfig(rounds=0)
    predictor = DelayPredictor(sample_bundle).build_graph()
    with pytest.raises(ValueError):
        predictor.propagate(rounds=0)
