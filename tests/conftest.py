"""Shared fixtures for the Zoo walkthrough tests."""

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from zoo_classification.config import POSITIVE_CLASS
from zoo_classification.data_loader import load_data
from zoo_classification.preprocessing import relabel_binary


@pytest.fixture(scope="session")
def _zoo() -> pd.DataFrame:
    return load_data()


@pytest.fixture
def zoo(_zoo: pd.DataFrame) -> pd.DataFrame:
    """Fresh copy of the bundled Zoo table."""
    return _zoo.copy()


@pytest.fixture
def zoo_reptile(zoo: pd.DataFrame) -> pd.DataFrame:
    """Zoo table with the reptile / nonreptile class."""
    return relabel_binary(zoo, POSITIVE_CLASS)
