"""
Data loading and initial inspection module.
"""
import pandas as pd
import numpy as np
from typing import Tuple, Dict, Any

from zoo_classification.config import (
    DATA_PATH, TARGET_COLUMN, ID_COLUMN, CLASS_NAMES, BOOLEAN_LEVELS
)


def load_data(filepath: str = None) -> pd.DataFrame:
    """
    Load the Zoo dataset and convert it into model-ready column types.

    Args:
        filepath: Path to CSV file. If None, uses the bundled dataset.

    Returns:
        DataFrame with one row per animal. Logical attributes are
        categoricals with levels [True, False] and the class column is a
        categorical with the levels from config.
    """
    if filepath is None:
        filepath = DATA_PATH

    df = pd.read_csv(filepath)
    if TARGET_COLUMN not in df.columns:
        raise ValueError(f"Expected target column '{TARGET_COLUMN}' in {filepath}")

    df = to_categorical(df)
    if set(df[TARGET_COLUMN].dropna().unique()) <= set(CLASS_NAMES):
        df[TARGET_COLUMN] = df[TARGET_COLUMN].cat.set_categories(CLASS_NAMES)

    print(f"✅ Loaded data: {df.shape[0]} samples, {df.shape[1]} columns")
    return df


def _is_text(series: pd.Series) -> bool:
    """True for object and string columns that are neither logical nor categorical."""
    if pd.api.types.is_bool_dtype(series) or isinstance(series.dtype, pd.CategoricalDtype):
        return False
    return pd.api.types.is_object_dtype(series) or pd.api.types.is_string_dtype(series)


def to_categorical(df: pd.DataFrame) -> pd.DataFrame:
    """
    Turn logical and character columns into categoricals.

    Tree learners only build a classification tree when the class column is
    nominal, and nominal attributes need to be declared as such. Logical
    columns get the levels [True, False]. The ID column is left untouched.
    """
    df = df.copy()
    for col in df.columns:
        if col == ID_COLUMN:
            continue
        if pd.api.types.is_bool_dtype(df[col]):
            df[col] = pd.Categorical(df[col], categories=BOOLEAN_LEVELS)
        elif _is_text(df[col]):
            df[col] = pd.Categorical(df[col])
    return df


def get_data_info(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Get comprehensive information about the dataset.

    Args:
        df: Input DataFrame.

    Returns:
        Dictionary with dataset information.
    """
    info = {
        'n_samples': len(df),
        'n_features': len(get_feature_columns(df)),
        'n_total_columns': len(df.columns),
        'missing_values': int(df.isnull().sum().sum()),
        'duplicate_rows': int(df.drop(columns=[ID_COLUMN], errors='ignore').duplicated().sum()),
    }

    if ID_COLUMN in df.columns:
        info['unique_ids'] = df[ID_COLUMN].nunique()
        info['id_column_present'] = True
    else:
        info['id_column_present'] = False

    if TARGET_COLUMN in df.columns:
        info['target_column_present'] = True
        # Keep empty levels so rare classes stay visible
        info['class_distribution'] = df[TARGET_COLUMN].value_counts(sort=False).to_dict()
        info['n_classes'] = df[TARGET_COLUMN].nunique()
    else:
        info['target_column_present'] = False

    return info


def print_data_report(df: pd.DataFrame) -> None:
    """
    Print a data quality report with the class distribution.

    Args:
        df: Input DataFrame.
    """
    info = get_data_info(df)

    print("\n" + "="*60)
    print("📊 DATASET OVERVIEW")
    print("="*60)
    print(f"  Total samples:     {info['n_samples']:,}")
    print(f"  Total columns:     {info['n_total_columns']}")
    print(f"  Feature columns:   {info['n_features']}")

    print("\n" + "-"*60)
    print("📋 DATA QUALITY")
    print("-"*60)
    print(f"  Missing values:    {info['missing_values']}")
    print(f"  Duplicate rows:    {info['duplicate_rows']}")
    if info.get('id_column_present'):
        print(f"  Unique IDs:        {info['unique_ids']} (all unique: {info['unique_ids'] == info['n_samples']})")

    if info.get('target_column_present'):
        print("\n" + "-"*60)
        print(f"🎯 CLASS DISTRIBUTION (Target: {TARGET_COLUMN})")
        print("-"*60)
        class_dist = info['class_distribution']
        total = sum(class_dist.values())

        for cls, count in sorted(class_dist.items(), key=lambda x: x[1], reverse=True):
            pct = count / total * 100
            bar = "█" * int(pct / 2)
            print(f"  {str(cls):14s}: {count:4d} ({pct:5.1f}%) {bar}")

        observed = [count for count in class_dist.values() if count > 0]
        imbalance_ratio = max(observed) / min(observed)
        print(f"\n  ⚠️  Imbalance ratio (max/min): {imbalance_ratio:.2f}:1")

    print("\n" + "="*60)


def get_feature_columns(df: pd.DataFrame, target: str = TARGET_COLUMN) -> list:
    """Feature column names (everything except the ID and class columns)."""
    exclude_cols = [ID_COLUMN, target]
    return [col for col in df.columns if col not in exclude_cols]


def split_features_target(
    df: pd.DataFrame, target: str = TARGET_COLUMN
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Split DataFrame into features (X) and target (y).

    Args:
        df: Input DataFrame.
        target: Class column name.

    Returns:
        Tuple of (X, y) where X is features DataFrame and y is target Series.
    """
    if target not in df.columns:
        raise ValueError(f"Expected target column '{target}' in df")

    X = df[get_feature_columns(df, target)].copy()
    y = df[target].copy()
    return X, y


def check_data_types(df: pd.DataFrame) -> Dict[str, list]:
    """
    Check and categorize column data types.

    Args:
        df: Input DataFrame.

    Returns:
        Dictionary with column names grouped by type.
    """
    numeric_cols = []
    categorical_cols = []
    other_cols = []

    for col in get_feature_columns(df):
        if isinstance(df[col].dtype, pd.CategoricalDtype) or _is_text(df[col]):
            categorical_cols.append(col)
        elif pd.api.types.is_numeric_dtype(df[col]):
            numeric_cols.append(col)
        else:
            other_cols.append(col)

    print(f"\n📊 Feature types:")
    print(f"  Numeric:     {len(numeric_cols)}")
    print(f"  Categorical: {len(categorical_cols)}")
    print(f"  Other:       {len(other_cols)}")

    return {
        'numeric': numeric_cols,
        'categorical': categorical_cols,
        'other': other_cols,
    }


def make_animal(reference: pd.DataFrame, **attributes: Any) -> pd.DataFrame:
    """
    Build a one-row table for a new animal using the reference column types.

    Categorical columns get the same levels as in ``reference`` so a model
    fitted on it can predict the row. Columns not given are missing.

    Raises:
        ValueError: If an attribute is not a column of ``reference``.
    """
    unknown = sorted(set(attributes) - set(reference.columns))
    if unknown:
        raise ValueError(f"Unknown attributes: {unknown}")

    row = {}
    for col in reference.columns:
        if col == ID_COLUMN:
            continue
        value = attributes.get(col, np.nan)
        dtype = reference[col].dtype
        if isinstance(dtype, pd.CategoricalDtype):
            row[col] = pd.Categorical([value], categories=dtype.categories)
        else:
            row[col] = pd.Series([value], dtype='float64' if pd.isna(value) else None)
    return pd.DataFrame(row)
