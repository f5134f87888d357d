"""
Data preprocessing module: feature encoding, stratified partitions and relabeling.

Tree learners in scikit-learn need a numeric matrix, so nominal attributes are
encoded inside the model pipeline by ``DataPreprocessor``. The partition
helpers mirror caret's createDataPartition / createFolds.
"""
import math
import pandas as pd
import numpy as np
from typing import Tuple, List, Dict, Optional, Sequence
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.model_selection import train_test_split, StratifiedKFold

from zoo_classification.config import RANDOM_STATE, TRAIN_FRACTION, TARGET_COLUMN, N_SPLITS


class DataPreprocessor(BaseEstimator, TransformerMixin):
    """
    Encodes a feature table into the numeric matrix a tree or kNN model needs.

    - Two-level nominal features become one 0/1 column named after the
      feature (1 means the first level, e.g. True).
    - Nominal features with more levels become one indicator per level,
      named ``<feature><level>`` (e.g. ``typeinsect``).
    - Numeric features pass through unchanged.

    Levels are learned in ``fit``; levels unseen at fit time encode as all
    zeros in ``transform``.
    """

    def __init__(self, impute_missing: bool = False):
        self.impute_missing = impute_missing

    def fit(self, X: pd.DataFrame, y=None) -> "DataPreprocessor":
        X = self._as_frame(X)
        self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        self.levels_: Dict[str, List] = {}
        self.numeric_features_: List[str] = []
        self.fill_values_: Dict[str, object] = {}

        for col in X.columns:
            series = X[col]
            if isinstance(series.dtype, pd.CategoricalDtype):
                self.levels_[col] = list(series.cat.categories)
            elif pd.api.types.is_bool_dtype(series):
                self.levels_[col] = [True, False]
            elif pd.api.types.is_numeric_dtype(series):
                self.numeric_features_.append(col)
            else:
                self.levels_[col] = sorted(series.dropna().unique().tolist(), key=str)

            if self.impute_missing:
                if col in self.numeric_features_:
                    self.fill_values_[col] = series.median()
                elif series.notna().any():
                    self.fill_values_[col] = series.mode().iloc[0]

        empty = [col for col, levels in self.levels_.items() if not levels]
        if empty:
            raise ValueError(f"Nominal columns without observed levels: {empty}")

        self.feature_groups_ = {}
        for col in X.columns:
            if col in self.numeric_features_ or len(self.levels_[col]) <= 2:
                self.feature_groups_[col] = [col]
            else:
                self.feature_groups_[col] = [f"{col}{level}" for level in self.levels_[col]]
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        if not hasattr(self, "feature_groups_"):
            raise ValueError("Preprocessor must be fitted before transform. Call fit first.")

        X = self._as_frame(X)
        missing = [col for col in self.feature_groups_ if col not in X.columns]
        if missing:
            raise ValueError(f"Missing feature columns: {missing}")

        if self.impute_missing:
            X = self._handle_missing_values(X)

        encoded = {}
        for col, names in self.feature_groups_.items():
            if col in self.numeric_features_:
                encoded[col] = pd.to_numeric(X[col]).astype(float).to_numpy()
                continue

            values = X[col].astype(object).to_numpy()
            levels = self.levels_[col]
            if len(names) == 1:
                encoded[col] = (values == levels[0]).astype(float)
            else:
                for name, level in zip(names, levels):
                    encoded[name] = (values == level).astype(float)

        return pd.DataFrame(encoded, index=X.index)

    def get_feature_names_out(self, input_features=None) -> np.ndarray:
        return np.asarray(
            [name for names in self.feature_groups_.values() for name in names], dtype=object
        )

    def _handle_missing_values(self, X: pd.DataFrame) -> pd.DataFrame:
        """Median/mode imputation with the values learned in fit."""
        X = X.copy()
        for col, value in self.fill_values_.items():
            if X[col].isnull().any():
                X[col] = X[col].fillna(value)
        return X

    @staticmethod
    def _as_frame(X) -> pd.DataFrame:
        if isinstance(X, pd.DataFrame):
            return X
        return pd.DataFrame(X)


def create_data_partition(
    df: pd.DataFrame,
    p: float = TRAIN_FRACTION,
    target: str = TARGET_COLUMN,
    random_state: int = RANDOM_STATE,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Create a stratified training/testing partition of a DataFrame.

    The training share is rounded up, so 101 rows with ``p=0.8`` give 81
    training and 20 testing rows.

    Args:
        df: Input DataFrame including the class column.
        p: Fraction of rows used for training.
        target: Class column used for stratification.
        random_state: Random seed.

    Returns:
        Tuple of (training, testing) DataFrames (independent copies).
    """
    if target not in df.columns:
        raise ValueError(f"Expected target column '{target}' in df")
    if not 0 < p < 1:
        raise ValueError(f"p must be between 0 and 1, got {p}")

    n_train = int(math.ceil(len(df) * p))
    training, testing = train_test_split(
        df,
        train_size=n_train,
        random_state=random_state,
        stratify=df[target].astype(str),
    )

    print(f"\n✅ Train-test split (stratified, p={p}):")
    print(f"   Train: {len(training)} samples")
    print(f"   Test:  {len(testing)} samples")

    return training.copy(), testing.copy()


def create_folds(
    y: Sequence,
    k: int = N_SPLITS,
    random_state: int = RANDOM_STATE,
) -> List[Tuple[np.ndarray, np.ndarray]]:
    """
    Create a fixed stratified k-fold sampling scheme.

    Reusing the same folds for several models makes their resampled
    performance directly comparable.

    Returns:
        List of (train_indices, test_indices) pairs (positional).
    """
    y = np.asarray(y, dtype=object).astype(str)
    cv = StratifiedKFold(n_splits=k, shuffle=True, random_state=random_state)
    return [(train_idx, test_idx) for train_idx, test_idx in cv.split(np.zeros(len(y)), y)]


def relabel_binary(
    df: pd.DataFrame,
    positive: str,
    target: str = TARGET_COLUMN,
    labels: Optional[Tuple[str, str]] = None,
) -> pd.DataFrame:
    """
    Turn a multi-level class column into a two-level one-vs-rest class.

    Args:
        df: Input DataFrame.
        positive: Class value that becomes the positive label.
        target: Class column name.
        labels: (negative_label, positive_label). Defaults to
            ("non<positive>", "<positive>").

    Returns:
        Copy of ``df`` whose class column is a categorical with the levels
        (negative_label, positive_label).
    """
    if target not in df.columns:
        raise ValueError(f"Expected target column '{target}' in df")

    negative_label, positive_label = labels or (f"non{positive}", positive)
    is_positive = (df[target].astype(object) == positive).to_numpy()

    out = df.copy()
    out[target] = pd.Categorical(
        np.where(is_positive, positive_label, negative_label),
        categories=[negative_label, positive_label],
    )
    return out


def class_to_indicators(y: pd.Series) -> pd.DataFrame:
    """
    Recode a nominal variable as a set of 0/1 dummy variables.

    One column per level (empty levels included), each a categorical with
    levels [0, 1].
    """
    y = pd.Series(y)
    if isinstance(y.dtype, pd.CategoricalDtype):
        levels = list(y.cat.categories)
    else:
        levels = sorted(y.dropna().unique().tolist(), key=str)

    values = y.astype(object).to_numpy()
    return pd.DataFrame(
        {
            str(level): pd.Categorical((values == level).astype(int), categories=[0, 1])
            for level in levels
        },
        index=y.index,
    )


def drop_unused_levels(df: pd.DataFrame) -> pd.DataFrame:
    """Remove categorical levels that have no observations."""
    df = df.copy()
    for col in df.columns:
        if isinstance(df[col].dtype, pd.CategoricalDtype):
            df[col] = df[col].cat.remove_unused_categories()
    return df
