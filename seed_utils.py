"""Deterministic seeding for every stochastic component of the pipeline."""
import hashlib
import logging
import random
from typing import Optional

import numpy as np

from config import DEFAULT_RANDOM_SEED

logger = logging.getLogger(__name__)

_base_seed: int = DEFAULT_RANDOM_SEED
_current_seed: int = DEFAULT_RANDOM_SEED


def set_global_seed(seed: Optional[int] = None, quiet: bool = False) -> int:
    """Seed ``random`` and ``numpy.random`` and remember the base seed."""
    global _base_seed, _current_seed

    if seed is None:
        seed = DEFAULT_RANDOM_SEED
    seed = int(seed)

    random.seed(seed)
    np.random.seed(seed % (2 ** 32))
    _base_seed = seed
    _current_seed = seed

    if not quiet:
        logger.info("Global random seed set to %d", seed)
    return seed


def reseed_for_phase(phase: str, quiet: bool = False) -> int:
    """Derive a stable seed for a named phase from the base seed.

    The same base seed and phase label always give the same stream, so a
    stage can be re-run in isolation and still reproduce its results.
    """
    global _current_seed

    digest = hashlib.sha256(f"{_base_seed}::{phase}".encode("utf-8")).hexdigest()
    phase_seed = int(digest[:8], 16)

    random.seed(phase_seed)
    np.random.seed(phase_seed)
    _current_seed = phase_seed

    if not quiet:
        logger.info("Reseeded phase '%s' with %d", phase, phase_seed)
    return phase_seed


def get_current_seed() -> int:
    return _current_seed
