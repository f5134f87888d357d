"""
Model definitions and training module for the Zoo walkthrough.

Models:
1. CART (rpart) - Gini decision tree, tuned over the cost-complexity parameter
2. kNN - k-nearest neighbours on the 0/1 encoded attributes, tuned over k

``ModelTrainer.train`` packages resampling and hyperparameter tuning into one
call: every (parameter, fold) pair is fitted and scored in a joblib parallel
map, the scores are averaged per parameter setting, and the best setting is
refit on all supplied rows.
"""
import warnings
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import effective_n_jobs, parallel_config
from scipy import stats
from sklearn.base import clone
from sklearn.inspection import permutation_importance
from sklearn.metrics import cohen_kappa_score, make_scorer, recall_score, roc_auc_score
from sklearn.model_selection import GridSearchCV, StratifiedKFold
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.tree import DecisionTreeClassifier, export_text

from zoo_classification.config import (
    RANDOM_STATE, N_SPLITS, N_JOBS, TARGET_COLUMN, DEFAULT_TREE_PARAMS
)
from zoo_classification.data_loader import get_feature_columns
from zoo_classification.preprocessing import DataPreprocessor

MISSING_RESAMPLE_WARNING = "There were missing values in resampled performance measures."

METHOD_LABELS = {
    'rpart': 'CART',
    'knn': 'k-Nearest Neighbors',
}

RESAMPLING_LABELS = {
    'cv': 'Cross-Validated',
    'boot': 'Bootstrapped',
    'folds': 'Cross-Validated (fixed folds)',
}


def tree_params(**overrides: Any) -> Dict[str, Any]:
    """
    Default tree settings with overrides applied.

    When only ``min_samples_split`` is overridden the leaf minimum follows it
    as round(min_samples_split / 3), the same coupling rpart uses between
    minsplit and minbucket.
    """
    params = dict(DEFAULT_TREE_PARAMS)
    if 'min_samples_split' in overrides and 'min_samples_leaf' not in overrides:
        params['min_samples_leaf'] = max(1, int(round(overrides['min_samples_split'] / 3)))
    params.update(overrides)
    return params


def parallel_backend(n_jobs: int = N_JOBS):
    """Register a multi-worker backend for resampling; use as a context manager."""
    return parallel_config(backend='loky', n_jobs=n_jobs)


def worker_count() -> int:
    """Number of workers the active backend will use."""
    return effective_n_jobs(None)


def bootstrap_splits(
    n_samples: int, number: int, random_state: int = RANDOM_STATE
) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Bootstrap resamples: train on n draws with replacement, test on the out-of-bag rows."""
    rng = np.random.RandomState(random_state)
    splits = []
    for _ in range(number):
        in_bag = rng.randint(0, n_samples, n_samples)
        out_of_bag = np.setdiff1d(np.arange(n_samples), in_bag)
        splits.append((in_bag, out_of_bag))
    return splits


def tree_to_text(model: Pipeline) -> str:
    """Text rendering of a fitted tree pipeline (one line per split / leaf)."""
    tree = model.named_steps['model']
    feature_names = list(model.named_steps['encode'].get_feature_names_out())
    return export_text(tree, feature_names=feature_names, show_weights=True)


def _roc_auc(estimator, X, y, positive: str) -> float:
    classes = [str(c) for c in estimator.classes_]
    proba = estimator.predict_proba(X)[:, classes.index(positive)]
    return roc_auc_score(np.asarray(y) == positive, proba)


def _scoring(metric: str, positive: Optional[str], negative: Optional[str]) -> Dict[str, Any]:
    scoring = {
        'Accuracy': 'accuracy',
        'Kappa': make_scorer(cohen_kappa_score),
    }
    if metric == 'ROC':
        scoring['ROC'] = partial(_roc_auc, positive=positive)
        scoring['Sens'] = make_scorer(recall_score, pos_label=positive, zero_division=np.nan)
        scoring['Spec'] = make_scorer(recall_score, pos_label=negative, zero_division=np.nan)
    elif metric not in scoring:
        raise ValueError(f"Unknown metric '{metric}'. Available: Accuracy, Kappa, ROC")
    return scoring


@dataclass
class TrainResult:
    """Outcome of ``ModelTrainer.train``: tuning table, per-fold scores and the final model."""

    method: str
    metric: str
    target: str
    features: List[str]
    classes: List[str]
    results: pd.DataFrame
    best_params: Dict[str, Any]
    resample: pd.DataFrame
    final_model: Pipeline
    resampling: str
    n_samples: int
    splits: List[Tuple[np.ndarray, np.ndarray]] = field(repr=False)
    positive: Optional[str] = None

    @property
    def model(self):
        """The fitted estimator inside the final pipeline."""
        return self.final_model.named_steps['model']

    def predict(self, df: pd.DataFrame) -> pd.Series:
        pred = self.final_model.predict(df[self.features])
        return pd.Series(
            pd.Categorical([str(p) for p in pred], categories=self.classes),
            index=df.index, name=self.target,
        )

    def predict_proba(self, df: pd.DataFrame) -> pd.DataFrame:
        proba = self.final_model.predict_proba(df[self.features])
        columns = [str(c) for c in self.final_model.classes_]
        return pd.DataFrame(proba, columns=columns, index=df.index)

    def summary(self) -> str:
        lines = [
            METHOD_LABELS[self.method],
            "",
            f"{self.n_samples} samples",
            f"{len(self.features)} predictors",
            f"{len(self.classes)} classes: " + ", ".join(f"'{c}'" for c in self.classes),
            "",
            f"Resampling: {RESAMPLING_LABELS[self.resampling]} ({len(self.splits)} resamples)",
            "Summary of sample sizes: " + ", ".join(str(len(train)) for train, _ in self.splits[:5])
            + (", ..." if len(self.splits) > 5 else ""),
            "Resampling results across tuning parameters:",
            "",
            self.results.to_string(index=False, float_format=lambda x: f"{x:.4f}"),
            "",
            f"{self.metric} was used to select the optimal model using the largest value.",
            "The final value used for the model was "
            + ", ".join(f"{k} = {v}" for k, v in self.best_params.items()) + ".",
        ]
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()


class ModelTrainer:
    """
    Builds, tunes and stores the walkthrough's models.
    """

    def __init__(self, random_state: int = RANDOM_STATE, n_jobs: Optional[int] = None):
        """
        Initialize the model trainer.

        Args:
            random_state: Seed for trees and resampling.
            n_jobs: Workers for the resampling map. None defers to the
                backend registered with ``parallel_backend``.
        """
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.models: Dict[str, Any] = {}

    def _build_pipeline(
        self,
        method: str,
        model_params: Optional[Dict[str, Any]] = None,
        class_weight: Optional[Dict[str, float]] = None,
    ) -> Pipeline:
        model_params = dict(model_params or {})
        if method == 'rpart':
            model = DecisionTreeClassifier(
                random_state=self.random_state,
                class_weight=class_weight,
                **tree_params(**model_params)
            )
        elif method == 'knn':
            if class_weight is not None:
                raise ValueError("kNN does not support class weights")
            model = KNeighborsClassifier(**model_params)
        else:
            raise ValueError(f"Unknown method '{method}'. Available: {list(METHOD_LABELS)}")

        return Pipeline([('encode', DataPreprocessor()), ('model', model)])

    @staticmethod
    def _prepare(
        df: pd.DataFrame, target: str, features: Optional[Sequence[str]]
    ) -> Tuple[pd.DataFrame, np.ndarray, List[str]]:
        if target not in df.columns:
            raise ValueError(f"Expected target column '{target}' in df")
        if df[target].isnull().any():
            raise ValueError(f"Class column '{target}' has missing values")

        features = list(features) if features is not None else get_feature_columns(df, target)
        if not features:
            raise ValueError("At least one feature is needed to fit a model")

        y = np.asarray([str(v) for v in df[target]], dtype=object)
        if isinstance(df[target].dtype, pd.CategoricalDtype):
            levels = [str(c) for c in df[target].cat.categories]
        else:
            levels = sorted(set(y))
        observed = set(y)
        classes = [c for c in levels if c in observed]
        return df[features], y, classes

    def fit_tree(
        self,
        df: pd.DataFrame,
        target: str = TARGET_COLUMN,
        features: Optional[Sequence[str]] = None,
        class_weight: Optional[Dict[str, float]] = None,
        name: Optional[str] = None,
        **params: Any,
    ) -> Pipeline:
        """
        Fit a single Gini tree (no resampling) on all rows of ``df``.

        Args:
            df: Training table.
            target: Class column.
            features: Feature subset (defaults to every non-ID column).
            class_weight: Optional per-class weights.
            name: Store the model under this name.
            **params: Tree settings overriding the defaults.

        Returns:
            Fitted Pipeline (encoder + tree).
        """
        X, y, _ = self._prepare(df, target, features)
        model = self._build_pipeline('rpart', params, class_weight)
        model.fit(X, y)
        if name:
            self.models[name] = model
        return model

    def _default_grid(
        self,
        method: str,
        X: pd.DataFrame,
        y: np.ndarray,
        tune_length: int,
        model_params: Dict[str, Any],
        class_weight: Optional[Dict[str, float]],
    ) -> Dict[str, List]:
        """Candidate values picked from the data, simplest model first."""
        if method == 'knn':
            return {'n_neighbors': [5 + 2 * i for i in range(tune_length)]}

        params = tree_params(**model_params)
        params.pop('ccp_alpha', None)
        encoded = DataPreprocessor().fit_transform(X)
        path = DecisionTreeClassifier(
            random_state=self.random_state, class_weight=class_weight, **params
        ).cost_complexity_pruning_path(encoded, y)

        alphas = np.unique(np.round(path.ccp_alphas, 10))[::-1]
        if tune_length < len(alphas):
            positions = np.unique(np.linspace(0, len(alphas) - 1, tune_length).round().astype(int))
            alphas = alphas[positions]
        return {'ccp_alpha': [float(a) for a in alphas]}

    def _splits(
        self,
        y: np.ndarray,
        resampling: str,
        number: int,
        folds: Optional[Sequence[Tuple[np.ndarray, np.ndarray]]],
    ) -> List[Tuple[np.ndarray, np.ndarray]]:
        if folds is not None:
            return [(np.asarray(train), np.asarray(test)) for train, test in folds]
        if resampling == 'cv':
            cv = StratifiedKFold(n_splits=number, shuffle=True, random_state=self.random_state)
            return list(cv.split(np.zeros(len(y)), y))
        if resampling == 'boot':
            return bootstrap_splits(len(y), number, self.random_state)
        raise ValueError(f"Unknown resampling '{resampling}'. Available: cv, boot")

    def train(
        self,
        df: pd.DataFrame,
        target: str = TARGET_COLUMN,
        features: Optional[Sequence[str]] = None,
        method: str = 'rpart',
        resampling: str = 'cv',
        number: int = N_SPLITS,
        folds: Optional[Sequence[Tuple[np.ndarray, np.ndarray]]] = None,
        tune_length: int = 3,
        tune_grid: Optional[Dict[str, Sequence]] = None,
        metric: str = 'Accuracy',
        positive: Optional[str] = None,
        model_params: Optional[Dict[str, Any]] = None,
        class_weight: Optional[Dict[str, float]] = None,
        name: Optional[str] = None,
    ) -> TrainResult:
        """
        Tune a model with resampling and refit the best setting on all rows.

        Args:
            df: Training table.
            target: Class column.
            features: Feature subset (defaults to every non-ID column).
            method: 'rpart' or 'knn'.
            resampling: 'cv' (stratified k-fold) or 'boot' (bootstrap).
            number: Folds or bootstrap resamples.
            folds: Fixed (train_idx, test_idx) pairs; overrides ``resampling``.
            tune_length: Number of candidate values when ``tune_grid`` is None.
            tune_grid: Explicit candidate values, e.g. {'ccp_alpha': [0.01]}.
            metric: 'Accuracy', 'Kappa' or 'ROC' (two-class only; adds Sens/Spec).
            positive: Positive class for ROC/Sens (defaults to the last level).
            model_params: Fixed model settings (e.g. min_samples_split).
            class_weight: Per-class weights (cost-sensitive trees).
            name: Store the result under this name (defaults to ``method``).

        Returns:
            TrainResult.
        """
        X, y, classes = self._prepare(df, target, features)
        model_params = dict(model_params or {})

        negative = None
        if metric == 'ROC':
            if len(classes) != 2:
                raise ValueError("ROC needs a two-class problem")
            positive = positive or classes[-1]
            negative = next(c for c in classes if c != positive)

        scoring = _scoring(metric, positive, negative)
        estimator = self._build_pipeline(method, model_params, class_weight)
        param_grid = tune_grid or self._default_grid(
            method, X, y, tune_length, model_params, class_weight
        )
        splits = self._splits(y, resampling, number, folds)

        print(f"🚀 Training {METHOD_LABELS[method]} "
              f"({len(splits)} resamples x {int(np.prod([len(v) for v in param_grid.values()]))} candidates)...",
              end=" ", flush=True)

        search = GridSearchCV(
            estimator,
            {f"model__{key}": list(values) for key, values in param_grid.items()},
            scoring=scoring,
            cv=splits,
            refit=False,
            n_jobs=self.n_jobs,
            error_score=np.nan,
        )
        search.fit(X, y)

        results, fold_scores = self._summarize(search.cv_results_, list(scoring), len(splits))
        if any(np.isnan(scores).any() for scores in fold_scores.values()):
            warnings.warn(MISSING_RESAMPLE_WARNING)

        ranking = results[metric].fillna(-np.inf).to_numpy()
        best_index = int(np.argmax(ranking))
        best_params = {key: search.cv_results_['params'][best_index][f"model__{key}"] for key in param_grid}

        resample = pd.DataFrame({m: fold_scores[m][best_index] for m in scoring})
        resample['Resample'] = [f"Resample{i + 1:02d}" for i in range(len(splits))]

        final_model = clone(estimator).set_params(
            **{f"model__{key}": value for key, value in best_params.items()}
        )
        final_model.fit(X, y)

        result = TrainResult(
            method=method,
            metric=metric,
            target=target,
            features=list(X.columns),
            classes=classes,
            results=results,
            best_params=best_params,
            resample=resample,
            final_model=final_model,
            resampling='folds' if folds is not None else resampling,
            n_samples=len(y),
            splits=splits,
            positive=positive,
        )
        self.models[name or method] = result

        print(f"Done! Best {metric}: {results[metric].iloc[best_index]:.4f}")
        return result

    @staticmethod
    def _summarize(
        cv_results: Dict[str, Any], metrics: List[str], n_splits: int
    ) -> Tuple[pd.DataFrame, Dict[str, np.ndarray]]:
        """Mean and SD per candidate from the per-fold scores, ignoring missing folds."""
        fold_scores = {
            m: np.column_stack([
                np.asarray(cv_results[f"split{s}_test_{m}"], dtype=float) for s in range(n_splits)
            ])
            for m in metrics
        }

        rows = []
        for i, params in enumerate(cv_results['params']):
            row = {key.replace('model__', ''): value for key, value in params.items()}
            for m in metrics:
                row[m] = pd.Series(fold_scores[m][i]).mean()
            for m in metrics:
                row[f"{m}SD"] = pd.Series(fold_scores[m][i]).std()
            rows.append(row)

        return pd.DataFrame(rows), fold_scores

    def get_results_summary(self) -> pd.DataFrame:
        """Best resampled score of every stored TrainResult."""
        summary_data = []

        for model_name, result in self.models.items():
            if not isinstance(result, TrainResult):
                continue
            best = result.resample[[m for m in result.resample.columns if m != 'Resample']].mean()
            row = {'Model': model_name, 'Method': METHOD_LABELS[result.method]}
            row.update(best.to_dict())
            summary_data.append(row)

        return pd.DataFrame(summary_data)

    def get_feature_importance(
        self,
        model,
        method: str = 'impurity',
        df: Optional[pd.DataFrame] = None,
        target: str = TARGET_COLUMN,
        scale: bool = True,
        n_repeats: int = 10,
    ) -> pd.DataFrame:
        """
        Variable importance of a fitted tree.

        Args:
            model: TrainResult or fitted Pipeline.
            method: 'impurity' (Gini decrease of the chosen splits, summed
                over the encoded columns of each feature) or 'permutation'
                (accuracy drop when a feature is shuffled; needs ``df``).
            df: Data to permute on.
            target: Class column of ``df``.
            scale: Rescale to 0-100.
            n_repeats: Shuffles per feature for permutation importance.

        Returns:
            DataFrame with 'feature' and 'importance' columns, descending.
        """
        pipeline = model.final_model if isinstance(model, TrainResult) else model
        encoder = pipeline.named_steps['encode']

        if method == 'impurity':
            estimator = pipeline.named_steps['model']
            if not hasattr(estimator, 'feature_importances_'):
                raise ValueError("Model doesn't support impurity-based feature importance.")
            per_column = dict(zip(encoder.get_feature_names_out(), estimator.feature_importances_))
            importances = {
                feature: sum(per_column[col] for col in columns)
                for feature, columns in encoder.feature_groups_.items()
            }
        elif method == 'permutation':
            if df is None:
                raise ValueError("Permutation importance needs the data to permute")
            X, y, _ = self._prepare(df, target, list(encoder.feature_names_in_))
            perm = permutation_importance(
                pipeline, X, y,
                n_repeats=n_repeats,
                random_state=self.random_state,
                scoring='accuracy',
                n_jobs=self.n_jobs,
            )
            importances = dict(zip(X.columns, perm.importances_mean))
        else:
            raise ValueError(f"Unknown importance method '{method}'")

        importance_df = pd.DataFrame({
            'feature': list(importances),
            'importance': np.asarray(list(importances.values()), dtype=float),
        })
        if scale:
            low, high = importance_df['importance'].min(), importance_df['importance'].max()
            if high > low:
                importance_df['importance'] = (importance_df['importance'] - low) / (high - low) * 100

        return importance_df.sort_values('importance', ascending=False).reset_index(drop=True)


@dataclass
class ResampleComparison:
    """Per-resample scores of several models evaluated on identical resamples."""

    values: pd.DataFrame
    models: List[str]
    metrics: List[str]

    def summary(self) -> Dict[str, pd.DataFrame]:
        """Min / quartiles / mean / max / missing count per model, one table per metric."""
        tables = {}
        for metric in self.metrics:
            rows = {}
            for name in self.models:
                scores = self.values[f"{name}~{metric}"]
                rows[name] = {
                    'Min.': scores.min(),
                    '1st Qu.': scores.quantile(0.25),
                    'Median': scores.median(),
                    'Mean': scores.mean(),
                    '3rd Qu.': scores.quantile(0.75),
                    'Max.': scores.max(),
                    "NA's": int(scores.isnull().sum()),
                }
            tables[metric] = pd.DataFrame(rows).T
        return tables

    def diff(self) -> pd.DataFrame:
        """
        Pairwise differences with paired t-tests.

        p-values are Bonferroni-adjusted for the number of model pairs.
        """
        pairs = [(a, b) for i, a in enumerate(self.models) for b in self.models[i + 1:]]
        rows = []
        for metric in self.metrics:
            for a, b in pairs:
                differences = (self.values[f"{a}~{metric}"] - self.values[f"{b}~{metric}"]).dropna()
                if len(differences) > 1 and differences.std() > 0:
                    statistic, p_value = stats.ttest_1samp(differences, 0.0)
                else:
                    statistic, p_value = np.nan, np.nan
                rows.append({
                    'metric': metric,
                    'comparison': f"{a} - {b}",
                    'estimate': differences.mean(),
                    'statistic': statistic,
                    'p_value': min(1.0, p_value * len(pairs)) if not np.isnan(p_value) else np.nan,
                })
        return pd.DataFrame(rows)


def compare_resamples(results: Dict[str, TrainResult]) -> ResampleComparison:
    """
    Collect the resampled scores of models trained on the same folds.

    Raises:
        ValueError: If fewer than two models are given or their resamples differ.
    """
    if len(results) < 2:
        raise ValueError("Need at least two models to compare")

    names = list(results)
    reference = results[names[0]].splits
    for name in names[1:]:
        splits = results[name].splits
        same = len(splits) == len(reference) and all(
            np.array_equal(test, ref_test) for (_, test), (_, ref_test) in zip(splits, reference)
        )
        if not same:
            raise ValueError(f"Model '{name}' was not evaluated on the same resamples as '{names[0]}'")

    metrics = [
        m for m in results[names[0]].resample.columns
        if m != 'Resample' and all(m in r.resample.columns for r in results.values())
    ]
    values = pd.DataFrame({
        f"{name}~{metric}": results[name].resample[metric].to_numpy()
        for name in names for metric in metrics
    })
    values.index = results[names[0]].resample['Resample']
    return ResampleComparison(values=values, models=names, metrics=metrics)
