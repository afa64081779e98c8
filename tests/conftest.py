"""Shared fixtures: the bundled housing data and small synthetic frames."""

import numpy as np
import pandas as pd
import pytest

from modeldeck.data import add_price_class, load_housing


@pytest.fixture(scope="session")
def housing():
    return load_housing()


@pytest.fixture(scope="session")
def homes(housing):
    """Housing data with the derived two-class outcome."""
    return add_price_class(housing)


@pytest.fixture
def regression_data():
    """60 rows, two informative numeric predictors and one nominal one."""
    rng = np.random.default_rng(0)
    n = 60
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    group = np.array(["a", "b", "c"])[np.arange(n) % 3]
    y = 3 * x1 - 2 * x2 + (group == "b") + rng.normal(scale=0.3, size=n)
    x = pd.DataFrame({"x1": x1, "x2": x2, "group": pd.Categorical(group)})
    return x, pd.Series(y, name="y")


@pytest.fixture
def classification_data():
    """80 rows, two classes separated mostly along x1."""
    rng = np.random.default_rng(1)
    n = 80
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    label = np.where(x1 + rng.normal(scale=0.5, size=n) > 0, "yes", "no")
    x = pd.DataFrame({"x1": x1, "x2": x2})
    y = pd.Series(pd.Categorical(label, categories=["yes", "no"]), name="label")
    return x, y
