"""
Pytest configuration for the Stackowey test suite.

The interpreter modules live at the repository root; having this file here
puts the root on ``sys.path`` so the tests import them directly:

    python -m pytest
"""

import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def twin_rng():
    """A second generator with the same seed as ``rng``."""
    return np.random.default_rng(1234)
