import pytest

from config import ALNSConfig, GAConfig, OptimizerConfig, TabuConfig
from delay_predictor import DelayPredictor
from problem import ProblemContext
from sample_data import load_sample_bundle, three_vessel_example


@pytest.fixture
def sample_bundle():
    return load_sample_bundle()


@pytest.fixture
def three_vessel_bundle():
    return three_vessel_example()


@pytest.fixture
def sample_estimates(sample_bundle):
    predictor = DelayPredictor(sample_bundle).build_graph()
    predictor.propagate()
    return predictor.predict_all()


@pytest.fixture
def sample_context(sample_bundle, sample_estimates):
    return ProblemContext(sample_bundle, sample_estimates)


@pytest.fixture
def fast_config():
    """Small budgets so the full pipeline runs in well under a second per stage"""
    return OptimizerConfig(
        ga=GAConfig(population_size=20, generations=8),
        alns=ALNSConfig(iterations=60, checkpoint_interval=10),
        tabu=TabuConfig(iterations=20, checkpoint_interval=5),
        seed=7,
    )
