"""Tests for the feature encoder, partitions, folds and relabeling."""

import numpy as np
import pandas as pd
import pytest
from pytest_check import check

from zoo_classification.config import CLASS_NAMES, ID_COLUMN, TARGET_COLUMN
from zoo_classification.data_loader import get_feature_columns
from zoo_classification.preprocessing import (
    DataPreprocessor,
    class_to_indicators,
    create_data_partition,
    create_folds,
    drop_unused_levels,
    relabel_binary,
)


class TestDataPreprocessor:
    """Tests for DataPreprocessor: column naming, encoding and errors."""

    def test_binary_features_keep_their_names(self, zoo: pd.DataFrame) -> None:
        """Two-level attributes become one 0/1 column each, legs passes through."""
        # Arrange
        X = zoo[get_feature_columns(zoo)]

        # Act
        encoded = DataPreprocessor().fit_transform(X)

        # Assert
        with check:
            assert list(encoded.columns) == list(X.columns)
        with check:
            assert set(np.unique(encoded["hair"])) <= {0.0, 1.0}
        with check:
            assert (encoded["legs"] == X["legs"]).all()
        with check:
            assert (encoded["hair"] == (X["hair"] == True).astype(float)).all()  # noqa: E712

    def test_multi_level_feature_becomes_indicators(self, zoo: pd.DataFrame) -> None:
        """A nominal feature with many levels becomes one indicator per level."""
        # Act
        encoder = DataPreprocessor().fit(zoo[[TARGET_COLUMN]])
        encoded = encoder.transform(zoo[[TARGET_COLUMN]])

        # Assert
        with check:
            assert list(encoded.columns) == [f"type{name}" for name in CLASS_NAMES]
        with check:
            assert (encoded.sum(axis=1) == 1).all()
        with check:
            assert encoder.feature_groups_[TARGET_COLUMN] == list(encoded.columns)

    def test_unseen_level_encodes_as_zeros(self) -> None:
        """Values not seen at fit time switch every indicator off."""
        # Arrange
        train = pd.DataFrame({"colour": pd.Categorical(["red", "green", "blue"])})
        new = pd.DataFrame({"colour": ["purple"]})

        # Act
        encoded = DataPreprocessor().fit(train).transform(new)

        # Assert
        assert encoded.to_numpy().sum() == 0

    def test_nominal_column_without_levels_raises(self) -> None:
        """An all-missing text column has nothing to encode."""
        # Arrange
        df = pd.DataFrame({"legs": [2, 4], "colour": pd.Series([None, None], dtype=object)})

        # Act / Assert
        with pytest.raises(ValueError, match="colour"):
            DataPreprocessor().fit(df)

    def test_transform_before_fit_raises(self, zoo: pd.DataFrame) -> None:
        """The encoder needs to learn levels first."""
        with pytest.raises(ValueError, match="fitted"):
            DataPreprocessor().transform(zoo)

    def test_missing_columns_raise(self, zoo: pd.DataFrame) -> None:
        """Transforming a table without a fitted feature is an error."""
        # Arrange
        encoder = DataPreprocessor().fit(zoo[["hair", "legs"]])

        # Act / Assert
        with pytest.raises(ValueError, match="legs"):
            encoder.transform(zoo[["hair"]])

    def test_imputation_fills_missing_values(self) -> None:
        """With imputation on, missing numbers get the median and nominals the mode."""
        # Arrange
        df = pd.DataFrame({
            "legs": [2.0, 4.0, np.nan, 6.0],
            "tail": pd.Categorical([True, True, None, False], categories=[True, False]),
        })

        # Act
        encoded = DataPreprocessor(impute_missing=True).fit_transform(df)

        # Assert
        with check:
            assert encoded.loc[2, "legs"] == 4.0
        with check:
            assert encoded.loc[2, "tail"] == 1.0


class TestCreateDataPartition:
    """Tests for the stratified hold-out partition."""

    def test_eighty_percent_split_gives_81_and_20(self, zoo: pd.DataFrame) -> None:
        """101 rows at p=0.8 are split into 81 training and 20 testing rows."""
        # Act
        training, testing = create_data_partition(zoo, p=0.8)

        # Assert
        with check:
            assert len(training) == 81
        with check:
            assert len(testing) == 20
        with check:
            assert set(training.index).isdisjoint(testing.index)
        with check:
            assert set(training.index) | set(testing.index) == set(zoo.index)

    def test_every_class_reaches_training(self, zoo: pd.DataFrame) -> None:
        """Stratification keeps every class in the training part."""
        # Act
        training, _ = create_data_partition(zoo, p=0.8)

        # Assert
        assert (training[TARGET_COLUMN].value_counts() > 0).all()

    def test_partitions_are_copies(self, zoo: pd.DataFrame) -> None:
        """Changing a partition leaves the source table alone."""
        # Arrange
        training, _ = create_data_partition(zoo)
        first = training.index[0]
        original = zoo.loc[first, "legs"]

        # Act
        training.loc[first, "legs"] = 99

        # Assert
        assert zoo.loc[first, "legs"] == original

    def test_same_seed_same_partition(self, zoo: pd.DataFrame) -> None:
        """The partition is reproducible for a fixed seed."""
        # Act
        first, _ = create_data_partition(zoo, random_state=7)
        second, _ = create_data_partition(zoo, random_state=7)

        # Assert
        assert list(first.index) == list(second.index)

    def test_invalid_fraction_raises(self, zoo: pd.DataFrame) -> None:
        """p must lie strictly between 0 and 1."""
        with pytest.raises(ValueError, match="between 0 and 1"):
            create_data_partition(zoo, p=1.0)


class TestCreateFolds:
    """Tests for fixed fold creation."""

    def test_each_row_is_tested_exactly_once(self, zoo: pd.DataFrame) -> None:
        """Test indices of all folds partition the rows."""
        # Act
        folds = create_folds(zoo[TARGET_COLUMN], k=10)
        test_rows = np.concatenate([test for _, test in folds])

        # Assert
        with check:
            assert len(folds) == 10
        with check:
            assert sorted(test_rows.tolist()) == list(range(len(zoo)))
        with check:
            assert all(len(np.intersect1d(train, test)) == 0 for train, test in folds)


class TestRelabeling:
    """Tests for relabel_binary, class_to_indicators and drop_unused_levels."""

    def test_reptile_relabel_keeps_rows_and_reptiles(self, zoo: pd.DataFrame) -> None:
        """The binary problem has 101 rows of which 5 are reptiles."""
        # Act
        zoo_reptile = relabel_binary(zoo, "reptile")

        # Assert
        with check:
            assert len(zoo_reptile) == 101
        with check:
            assert (zoo_reptile[TARGET_COLUMN] == "reptile").sum() == 5
        with check:
            assert list(zoo_reptile[TARGET_COLUMN].cat.categories) == ["nonreptile", "reptile"]
        with check:
            assert zoo[TARGET_COLUMN].nunique() == 7

    def test_custom_labels(self, zoo: pd.DataFrame) -> None:
        """Label names can be chosen explicitly."""
        # Act
        out = relabel_binary(zoo, "bird", labels=("no", "yes"))

        # Assert
        with check:
            assert list(out[TARGET_COLUMN].cat.categories) == ["no", "yes"]
        with check:
            assert (out[TARGET_COLUMN] == "yes").sum() == 20

    def test_class_to_indicators_one_column_per_level(self, zoo: pd.DataFrame) -> None:
        """Every level gets a 0/1 column and each row has exactly one 1."""
        # Act
        dummies = class_to_indicators(zoo[TARGET_COLUMN])

        # Assert
        with check:
            assert list(dummies.columns) == CLASS_NAMES
        with check:
            assert (dummies.astype(int).sum(axis=1) == 1).all()
        with check:
            assert list(dummies["mammal"].cat.categories) == [0, 1]
        with check:
            assert dummies["reptile"].astype(int).sum() == 5

    def test_drop_unused_levels(self, zoo: pd.DataFrame) -> None:
        """Levels without rows are removed, others kept."""
        # Arrange
        birds = zoo[zoo[TARGET_COLUMN] == "bird"]

        # Act
        out = drop_unused_levels(birds)

        # Assert
        with check:
            assert list(out[TARGET_COLUMN].cat.categories) == ["bird"]
        with check:
            assert out[ID_COLUMN].equals(birds[ID_COLUMN])
