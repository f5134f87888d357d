"""
Class balancing: stratified resampling, synthetic oversampling and class weights.
"""
import pandas as pd
import numpy as np
from typing import Dict, Sequence, Optional, Union

from zoo_classification.config import RANDOM_STATE, TARGET_COLUMN


def stratified_sample(
    df: pd.DataFrame,
    sizes: Dict[str, int],
    target: str = TARGET_COLUMN,
    replace: bool = True,
    random_state: int = RANDOM_STATE,
) -> pd.DataFrame:
    """
    Draw a fixed number of rows from every class (simple random sampling per stratum).

    With ``replace=True`` a small minority class is oversampled, so many rows
    appear several times.

    Args:
        df: Input DataFrame.
        sizes: Mapping class value -> number of rows to draw.
        target: Class column name.
        replace: Sample with replacement.
        random_state: Random seed.

    Returns:
        Resampled DataFrame (rows of each stratum in the order of ``sizes``).
    """
    if target not in df.columns:
        raise ValueError(f"Expected target column '{target}' in df")

    rng = np.random.RandomState(random_state)
    labels = df[target].astype(object)
    parts = []
    for cls, size in sizes.items():
        stratum = df[(labels == cls).to_numpy()]
        if len(stratum) == 0:
            raise ValueError(f"No rows with {target} == {cls!r} to sample from")
        parts.append(stratum.sample(n=size, replace=replace, random_state=rng))

    sampled = pd.concat(parts)

    print(f"\n🔄 Stratified sampling ({'with' if replace else 'without'} replacement):")
    for cls, count in sampled[target].value_counts(sort=False).items():
        print(f"   {cls}: {count}")

    return sampled


def apply_smote(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    sampling_strategy: Union[str, Dict[str, int]] = 'auto',
    k_neighbors: int = 5,
    random_state: int = RANDOM_STATE,
) -> pd.DataFrame:
    """
    Oversample minority classes with synthetic rows (SMOTE for mixed nominal/numeric data).

    The neighbour count is capped by the size of the smallest class, so very
    rare classes still work. Categorical dtypes and levels are restored on the
    output.

    Args:
        df: Training DataFrame with features and class column.
        target: Class column name.
        sampling_strategy: imbalanced-learn sampling strategy.
        k_neighbors: Maximum number of nearest neighbours.
        random_state: Random seed.

    Returns:
        Resampled DataFrame.
    """
    from imblearn.over_sampling import SMOTENC

    X = df.drop(columns=[target])
    y = df[target].astype(str)

    categorical = [
        i for i, col in enumerate(X.columns)
        if not pd.api.types.is_numeric_dtype(X[col]) or isinstance(X[col].dtype, pd.CategoricalDtype)
    ]
    if not categorical or len(categorical) == X.shape[1]:
        raise ValueError("SMOTE-NC needs both nominal and numeric features")

    smallest = int(y.value_counts().min())
    if smallest < 2:
        raise ValueError("Every class needs at least two rows for SMOTE")

    print(f"\n🔄 Applying SMOTE-NC oversampling...")

    smote = SMOTENC(
        categorical_features=categorical,
        sampling_strategy=sampling_strategy,
        k_neighbors=min(k_neighbors, smallest - 1),
        random_state=random_state,
    )
    X_resampled, y_resampled = smote.fit_resample(X.astype(object), y)
    X_resampled = pd.DataFrame(X_resampled, columns=X.columns)

    for col in X.columns:
        dtype = X[col].dtype
        if isinstance(dtype, pd.CategoricalDtype):
            X_resampled[col] = pd.Categorical(X_resampled[col], categories=dtype.categories)
        else:
            X_resampled[col] = pd.to_numeric(X_resampled[col])

    target_dtype = df[target].dtype
    if isinstance(target_dtype, pd.CategoricalDtype):
        levels = {str(level): level for level in target_dtype.categories}
        X_resampled[target] = pd.Categorical(
            [levels[v] for v in np.asarray(y_resampled)], categories=target_dtype.categories
        )
    else:
        X_resampled[target] = np.asarray(y_resampled)

    print(f"   Original: {len(df)} samples")
    print(f"   After SMOTE-NC: {len(X_resampled)} samples (+{len(X_resampled) - len(df)})")
    for cls, count in X_resampled[target].value_counts(sort=False).items():
        print(f"     {cls}: {count}")

    return X_resampled


def cost_matrix_to_class_weight(
    cost: Sequence[Sequence[float]],
    classes: Sequence[str],
) -> Dict[str, float]:
    """
    Turn a misclassification loss matrix into class weights.

    ``cost[i][j]`` is the loss of predicting class j for a row of class i
    (classes in level order, diagonal zero). As with rpart's altered priors,
    the weight of class i is the total loss of misclassifying it.
    """
    cost = np.asarray(cost, dtype=float)
    if cost.shape != (len(classes), len(classes)):
        raise ValueError(f"Cost matrix must be {len(classes)}x{len(classes)}, got {cost.shape}")
    if np.any(np.diag(cost) != 0):
        raise ValueError("Cost matrix must have a zero diagonal")

    return {str(cls): float(weight) for cls, weight in zip(classes, cost.sum(axis=1))}


def balanced_class_weights(y: Sequence, classes: Optional[Sequence] = None) -> Dict[str, float]:
    """
    Calculate inverse-frequency class weights for imbalanced data.

    Args:
        y: Class labels.
        classes: Classes to weight (defaults to the observed ones).

    Returns:
        Dictionary mapping class label to weight.
    """
    from sklearn.utils.class_weight import compute_class_weight

    y = np.asarray(y, dtype=object).astype(str)
    classes = np.unique(y) if classes is None else np.asarray([str(c) for c in classes])
    weights = compute_class_weight('balanced', classes=classes, y=y)

    class_weights = dict(zip(classes.tolist(), weights.tolist()))

    print("\n📊 Class weights (for imbalanced handling):")
    for cls, weight in class_weights.items():
        print(f"   {cls}: {weight:.3f}")

    return class_weights
