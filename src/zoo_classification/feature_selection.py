"""
Feature selection: univariate scores, correlation-based subset selection and
greedy search over a black-box subset evaluator.

Scores treat every feature as nominal. Numeric features with few distinct
values (such as ``legs``) are used as is, others are binned into quantiles.
"""
import math
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from zoo_classification.config import (
    RANDOM_STATE, TARGET_COLUMN, N_BOOTSTRAP, CFS_MAX_BACKTRACKS, DEFAULT_TREE_PARAMS
)
from zoo_classification.data_loader import get_feature_columns

Evaluator = Callable[[List[str]], float]

MAX_NOMINAL_VALUES = 10
N_BINS = 5


def _nominal(series: pd.Series) -> pd.Series:
    """Feature values as strings; continuous values binned into quantiles."""
    if (
        pd.api.types.is_numeric_dtype(series)
        and not isinstance(series.dtype, pd.CategoricalDtype)
        and not pd.api.types.is_bool_dtype(series)
        and series.nunique() > MAX_NOMINAL_VALUES
    ):
        series = pd.qcut(series, q=N_BINS, duplicates='drop')
    return series.astype(object).astype(str)


def _entropy(*columns: pd.Series) -> float:
    """Joint entropy (bits) of one or more nominal columns."""
    counts = pd.concat(columns, axis=1).value_counts().to_numpy()
    return float(stats.entropy(counts, base=2))


def _score_table(df: pd.DataFrame, target: str, score: Callable[[pd.Series, pd.Series], float]) -> pd.DataFrame:
    if target not in df.columns:
        raise ValueError(f"Expected target column '{target}' in df")

    y = _nominal(df[target])
    features = get_feature_columns(df, target)
    weights = pd.DataFrame({
        'feature': features,
        'importance': [score(_nominal(df[col]), y) for col in features],
    })
    return weights.sort_values('importance', ascending=False, kind='stable').reset_index(drop=True)


def _cramers_v(x: pd.Series, y: pd.Series) -> float:
    ct = pd.crosstab(x, y)
    k = min(ct.shape) - 1
    if k == 0:
        return 0.0
    chi2, _, _, _ = stats.chi2_contingency(ct, correction=False)
    return math.sqrt(chi2 / (ct.to_numpy().sum() * k))


def _information_gain(x: pd.Series, y: pd.Series) -> float:
    return _entropy(y) + _entropy(x) - _entropy(x, y)


def _gain_ratio(x: pd.Series, y: pd.Series) -> float:
    split_info = _entropy(x)
    return _information_gain(x, y) / split_info if split_info > 0 else 0.0


def _symmetrical_uncertainty(x: pd.Series, y: pd.Series) -> float:
    total = _entropy(x) + _entropy(y)
    return 2 * _information_gain(x, y) / total if total > 0 else 0.0


def chi_squared(df: pd.DataFrame, target: str = TARGET_COLUMN) -> pd.DataFrame:
    """
    Chi-squared association of every feature with the class, as Cramér's V.

    Returns:
        DataFrame with 'feature' and 'importance' (0 = independent,
        1 = perfectly associated), descending.
    """
    return _score_table(df, target, _cramers_v)


def information_gain(df: pd.DataFrame, target: str = TARGET_COLUMN) -> pd.DataFrame:
    """Entropy reduction of the class given each feature (bits), descending."""
    return _score_table(df, target, _information_gain)


def gain_ratio(df: pd.DataFrame, target: str = TARGET_COLUMN) -> pd.DataFrame:
    """
    Information gain divided by the feature's own entropy, descending.

    Penalises features with many values, the same correction C4.5 applies
    when choosing splits.
    """
    return _score_table(df, target, _gain_ratio)


def symmetrical_uncertainty(df: pd.DataFrame, target: str = TARGET_COLUMN) -> pd.DataFrame:
    """Information gain normalised by the sum of both entropies, descending."""
    return _score_table(df, target, _symmetrical_uncertainty)


def cutoff_k(weights: pd.DataFrame, k: int) -> List[str]:
    """Names of the ``k`` highest scoring features (all of them if fewer)."""
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")
    ranked = weights.sort_values('importance', ascending=False, kind='stable')
    return ranked['feature'].head(k).tolist()


def as_simple_formula(subset: Sequence[str], target: str = TARGET_COLUMN) -> str:
    """Model formula for a feature subset, e.g. ``type ~ milk + feathers``."""
    if not subset:
        raise ValueError("Cannot build a formula from an empty feature subset")
    return f"{target} ~ " + " + ".join(subset)


def cfs(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    max_backtracks: int = CFS_MAX_BACKTRACKS,
) -> List[str]:
    """
    Correlation-based feature subset selection.

    Searches (best first) for the subset whose features are strongly
    associated with the class but weakly with each other. Association is
    measured with symmetrical uncertainty and a subset of k features scores

        k * mean(feature-class) / sqrt(k + k * (k - 1) * mean(feature-feature))

    Returns:
        Selected feature names.
    """
    if target not in df.columns:
        raise ValueError(f"Expected target column '{target}' in df")

    features = get_feature_columns(df, target)
    values = {col: _nominal(df[col]) for col in features}
    y = _nominal(df[target])

    class_corr = {col: _symmetrical_uncertainty(values[col], y) for col in features}
    pair_corr: Dict[frozenset, float] = {}

    def feature_corr(a: str, b: str) -> float:
        key = frozenset((a, b))
        if key not in pair_corr:
            pair_corr[key] = _symmetrical_uncertainty(values[a], values[b])
        return pair_corr[key]

    def merit(subset: List[str]) -> float:
        k = len(subset)
        r_cf = np.mean([class_corr[col] for col in subset])
        pairs = [feature_corr(a, b) for i, a in enumerate(subset) for b in subset[i + 1:]]
        r_ff = np.mean(pairs) if pairs else 0.0
        denominator = math.sqrt(k + k * (k - 1) * r_ff)
        return float(k * r_cf / denominator) if denominator > 0 else 0.0

    return best_first_search(features, merit, max_backtracks=max_backtracks, verbose=False)


def make_subset_evaluator(
    training: pd.DataFrame,
    target: str = TARGET_COLUMN,
    number: int = N_BOOTSTRAP,
    random_state: int = RANDOM_STATE,
    trainer=None,
) -> Evaluator:
    """
    Build a black-box scorer for feature subsets.

    The returned function trains a tree restricted to the given features on
    ``number`` bootstrap resamples of ``training``, with the complexity fixed
    at its default (no tuning). It prints the subset and the rounded score and
    returns the mean out-of-bag accuracy.

    Args:
        training: Training table with the class column.
        target: Class column.
        number: Bootstrap resamples per evaluation.
        random_state: Seed for the trees and the resamples.
        trainer: ModelTrainer to use (a fresh one by default).

    Returns:
        Callable mapping a list of feature names to a score in [0, 1].
    """
    from zoo_classification.models import ModelTrainer

    trainer = trainer or ModelTrainer(random_state=random_state)

    def evaluator(subset: Sequence[str]) -> float:
        subset = list(subset)
        if not subset:
            raise ValueError("Cannot evaluate an empty feature subset")

        result = trainer.train(
            training,
            target=target,
            features=subset,
            method='rpart',
            resampling='boot',
            number=number,
            tune_grid={'ccp_alpha': [DEFAULT_TREE_PARAMS['ccp_alpha']]},
            name='subset_evaluator',
        )
        score = float(np.mean(result.resample['Accuracy']))

        print("Trying features:", " + ".join(subset))
        print("Accuracy:", round(score, 2), "\n")
        return score

    return evaluator


def _cached(attributes: Sequence[str], eval_fun: Evaluator) -> Evaluator:
    """Evaluate each subset once; subsets are passed in attribute order."""
    order = {name: i for i, name in enumerate(attributes)}
    cache: Dict[frozenset, float] = {}

    def evaluate(subset) -> float:
        key = frozenset(subset)
        if key not in cache:
            cache[key] = eval_fun(sorted(key, key=order.__getitem__))
        return cache[key]

    return evaluate


def _ordered(attributes: Sequence[str], subset) -> List[str]:
    return [name for name in attributes if name in subset]


def forward_search(attributes: Sequence[str], eval_fun: Evaluator) -> List[str]:
    """
    Greedy forward selection.

    Starts from no features and adds the single best feature while that
    improves the score.
    """
    attributes = list(attributes)
    evaluate = _cached(attributes, eval_fun)

    selected: frozenset = frozenset()
    best_score = -np.inf
    while len(selected) < len(attributes):
        candidates = [selected | {name} for name in attributes if name not in selected]
        scores = [evaluate(c) for c in candidates]
        best = int(np.argmax(scores))
        if scores[best] <= best_score:
            break
        selected, best_score = candidates[best], scores[best]

    return _ordered(attributes, selected)


def backward_search(attributes: Sequence[str], eval_fun: Evaluator) -> List[str]:
    """
    Greedy backward elimination.

    Starts from all features and drops the single feature whose removal
    improves the score most, while that improves it.
    """
    attributes = list(attributes)
    if not attributes:
        raise ValueError("No attributes to search")
    evaluate = _cached(attributes, eval_fun)

    selected = frozenset(attributes)
    best_score = evaluate(selected)
    while len(selected) > 1:
        candidates = [selected - {name} for name in attributes if name in selected]
        scores = [evaluate(c) for c in candidates]
        best = int(np.argmax(scores))
        if scores[best] <= best_score:
            break
        selected, best_score = candidates[best], scores[best]

    return _ordered(attributes, selected)


def best_first_search(
    attributes: Sequence[str],
    eval_fun: Evaluator,
    max_backtracks: int = CFS_MAX_BACKTRACKS,
    verbose: bool = True,
) -> List[str]:
    """
    Best-first forward search.

    Always expands the best subset found so far that has not been expanded
    yet. Stops after ``max_backtracks`` expansions in a row without a new
    best score.
    """
    attributes = list(attributes)
    evaluate = _cached(attributes, eval_fun)

    open_list: Dict[frozenset, float] = {}
    expanded = set()
    best_subset: frozenset = frozenset()
    best_score = -np.inf

    def expand(subset: frozenset) -> None:
        expanded.add(subset)
        for name in attributes:
            child = subset | {name}
            if name not in subset and child not in expanded and child not in open_list:
                open_list[child] = evaluate(child)

    expand(frozenset())
    backtracks = 0
    while open_list and backtracks < max_backtracks:
        subset = max(open_list, key=open_list.get)
        score = open_list.pop(subset)
        if score > best_score:
            best_subset, best_score = subset, score
            backtracks = 0
        else:
            backtracks += 1
        expand(subset)

    if verbose:
        print(f"✅ Best-first search selected {len(best_subset)} features (score {best_score:.4f})")
    return _ordered(attributes, best_subset)


def hill_climbing_search(
    attributes: Sequence[str],
    eval_fun: Evaluator,
    random_state: Optional[int] = RANDOM_STATE,
) -> List[str]:
    """
    Hill climbing from a random non-empty subset.

    Each step moves to the best neighbour (one feature added or removed)
    while that improves the score.
    """
    attributes = list(attributes)
    if not attributes:
        raise ValueError("No attributes to search")
    evaluate = _cached(attributes, eval_fun)

    rng = np.random.RandomState(random_state)
    mask = rng.randint(0, 2, len(attributes)).astype(bool)
    if not mask.any():
        mask[rng.randint(len(attributes))] = True
    current = frozenset(np.asarray(attributes, dtype=object)[mask])
    current_score = evaluate(current)

    while True:
        neighbours = [current ^ {name} for name in attributes]
        neighbours = [n for n in neighbours if n]
        if not neighbours:
            break
        scores = [evaluate(n) for n in neighbours]
        best = int(np.argmax(scores))
        if scores[best] <= current_score:
            break
        current, current_score = neighbours[best], scores[best]

    return _ordered(attributes, current)
