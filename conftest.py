import numpy as np
import pytest

import config  # noqa: F401  (double precision for every test)


def disjunctive(codes, levels):
    codes = np.asarray(codes)
    return (codes[:, None] == np.arange(levels)).astype(float)


@pytest.fixture
def small_xy():
    # four observations, one 3-level variable against one 2-level variable
    X = disjunctive([0, 1, 2, 0], 3)
    Y = disjunctive([0, 1, 1, 0], 2)
    return X, Y


@pytest.fixture
def categorical_xy():
    rng = np.random.default_rng(0)
    n = 30

    def variable(levels):
        codes = np.concatenate([np.arange(levels), rng.integers(0, levels, n - levels)])
        return disjunctive(rng.permutation(codes), levels)

    X = np.hstack([variable(3), variable(4)])
    Y = np.hstack([variable(2), variable(5), variable(3)])
    return X, Y


@pytest.fixture
def continuous_xy():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(40, 4))
    Y = X @ rng.normal(size=(4, 3)) + 0.5 * rng.normal(size=(40, 3))
    return X, Y
