"""Tests for stratified resampling, SMOTE-NC and class weights."""

import numpy as np
import pandas as pd
import pytest
from pytest_check import check

from zoo_classification.config import (
    COST_MATRIX, ID_COLUMN, NEGATIVE_CLASS, POSITIVE_CLASS, TARGET_COLUMN
)
from zoo_classification.sampling import (
    apply_smote,
    balanced_class_weights,
    cost_matrix_to_class_weight,
    stratified_sample,
)


class TestStratifiedSample:
    """Tests for per-class sampling with replacement."""

    def test_sample_sizes_per_class(self, zoo_reptile: pd.DataFrame) -> None:
        """Each class is drawn exactly as often as requested."""
        # Act
        sampled = stratified_sample(zoo_reptile, {NEGATIVE_CLASS: 50, POSITIVE_CLASS: 100})
        counts = sampled[TARGET_COLUMN].value_counts()

        # Assert
        with check:
            assert counts[NEGATIVE_CLASS] == 50
        with check:
            assert counts[POSITIVE_CLASS] == 100
        with check:
            assert sampled[ID_COLUMN].isin(zoo_reptile[ID_COLUMN]).all()

    def test_minority_rows_are_repeated(self, zoo_reptile: pd.DataFrame) -> None:
        """Drawing 50 of 5 reptiles repeats rows."""
        # Act
        sampled = stratified_sample(zoo_reptile, {POSITIVE_CLASS: 50})

        # Assert
        assert sampled.index.duplicated().any()

    def test_same_seed_same_sample(self, zoo_reptile: pd.DataFrame) -> None:
        """The draw is reproducible for a fixed seed."""
        # Arrange
        sizes = {NEGATIVE_CLASS: 10, POSITIVE_CLASS: 10}

        # Act
        first = stratified_sample(zoo_reptile, sizes, random_state=1000)
        second = stratified_sample(zoo_reptile, sizes, random_state=1000)

        # Assert
        assert list(first.index) == list(second.index)

    def test_empty_stratum_raises(self, zoo_reptile: pd.DataFrame) -> None:
        """A class without rows cannot be sampled."""
        with pytest.raises(ValueError, match="dragon"):
            stratified_sample(zoo_reptile, {"dragon": 3})


class TestApplySmote:
    """Tests for SMOTE-NC oversampling."""

    def test_minority_is_oversampled_to_majority(self, zoo_reptile: pd.DataFrame) -> None:
        """Synthetic reptiles are added until both classes are equally large."""
        # Arrange
        df = zoo_reptile.drop(columns=[ID_COLUMN])

        # Act
        out = apply_smote(df, random_state=0)
        counts = out[TARGET_COLUMN].value_counts()

        # Assert
        with check:
            assert counts[POSITIVE_CLASS] == counts[NEGATIVE_CLASS] == 96
        with check:
            assert list(out[TARGET_COLUMN].cat.categories) == [NEGATIVE_CLASS, POSITIVE_CLASS]
        with check:
            assert list(out["hair"].cat.categories) == [True, False]
        with check:
            assert pd.api.types.is_numeric_dtype(out["legs"])

    def test_only_nominal_features_raise(self) -> None:
        """SMOTE-NC needs at least one numeric feature."""
        # Arrange
        df = pd.DataFrame({
            "hair": pd.Categorical([True, False, True, False]),
            TARGET_COLUMN: ["a", "a", "b", "b"],
        })

        # Act / Assert
        with pytest.raises(ValueError, match="nominal and numeric"):
            apply_smote(df)

    def test_single_row_class_raises(self) -> None:
        """A class with one row has no neighbours to interpolate with."""
        # Arrange
        df = pd.DataFrame({
            "hair": pd.Categorical([True, False, True]),
            "legs": [2, 4, 4],
            TARGET_COLUMN: ["a", "a", "b"],
        })

        # Act / Assert
        with pytest.raises(ValueError, match="at least two rows"):
            apply_smote(df)


class TestClassWeights:
    """Tests for class weights from costs and frequencies."""

    def test_cost_matrix_rows_become_weights(self) -> None:
        """Missing a reptile costs 100, so reptiles weigh 100 times more."""
        # Act
        weights = cost_matrix_to_class_weight(COST_MATRIX, [NEGATIVE_CLASS, POSITIVE_CLASS])

        # Assert
        assert weights == {NEGATIVE_CLASS: 1.0, POSITIVE_CLASS: 100.0}

    def test_cost_matrix_shape_must_match_classes(self) -> None:
        """A 2x2 matrix cannot weight three classes."""
        with pytest.raises(ValueError, match="3x3"):
            cost_matrix_to_class_weight(COST_MATRIX, ["a", "b", "c"])

    def test_cost_matrix_diagonal_must_be_zero(self) -> None:
        """Correct predictions cost nothing."""
        with pytest.raises(ValueError, match="zero diagonal"):
            cost_matrix_to_class_weight([[1, 1], [100, 0]], ["a", "b"])

    def test_balanced_weights_favour_rare_class(self, zoo_reptile: pd.DataFrame) -> None:
        """Inverse-frequency weights give every class the same total weight."""
        # Act
        weights = balanced_class_weights(zoo_reptile[TARGET_COLUMN])
        counts = zoo_reptile[TARGET_COLUMN].value_counts()

        # Assert
        with check:
            assert weights[POSITIVE_CLASS] > weights[NEGATIVE_CLASS]
        with check:
            assert np.isclose(
                weights[POSITIVE_CLASS] * counts[POSITIVE_CLASS],
                weights[NEGATIVE_CLASS] * counts[NEGATIVE_CLASS],
            )
