"""
pytest configuration with performance testing markers.
"""

import pytest

from synthetic_data.lattice import chain_graph, lattice_grid, make_block_features


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "performance: marks tests as performance benchmarks"
    )


@pytest.fixture
def step_chain():
    """Five units in a line with a single jump between units 3 and 4."""
    return chain_graph([0.0, 0.0, 0.0, 10.0, 10.0])


@pytest.fixture
def block_grid():
    """4x4 rook grid of 2x2 blocks with well-separated block features."""
    df, w = lattice_grid(width=4, height=4, block_w=2, block_h=2)
    df = make_block_features(df, n_features=2, separation=10.0, noise=0.1, random_state=7)
    return df, w


@pytest.fixture
def large_block_grid():
    """30x30 grid of 10x10 blocks for performance tests."""
    df, w = lattice_grid(width=30, height=30, block_w=10, block_h=10)
    df = make_block_features(df, n_features=3, separation=5.0, noise=0.5, random_state=42)
    return df, w
