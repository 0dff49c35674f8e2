import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from utils.synthetic import simulate_tissue_expression

SMALL_COUNTS = {"kidney": 8, "hippocampus": 6, "cerebellum": 7, "liver": 5}

SMALL_SIMULATION = {
    "n_genes": 300,
    "tissue_counts": SMALL_COUNTS,
    "n_markers": 25,
    "n_brain_shared": 20,
}


@pytest.fixture(scope="session")
def small_dataset():
    return simulate_tissue_expression(random_state=0, **SMALL_SIMULATION)


@pytest.fixture
def e(small_dataset):
    return small_dataset[0].copy()


@pytest.fixture
def tissue(small_dataset):
    return small_dataset[1].copy()


@pytest.fixture
def points():
    rng = np.random.default_rng(3)
    return rng.normal(size=(10, 3))
