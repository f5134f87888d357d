"""
Model evaluation module: accuracy, confusion-matrix statistics, ROC analysis and plots.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Any, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import cohen_kappa_score, confusion_matrix, roc_auc_score, roc_curve
from sklearn.tree import plot_tree as sk_plot_tree

from zoo_classification.config import PLOTS_DIR, ensure_output_dirs


def accuracy(truth: Sequence, prediction: Sequence) -> float:
    """
    Fraction of correct predictions.

    Builds the truth x prediction contingency table and returns the sum of
    its diagonal divided by the number of labels. A missing label or
    prediction never counts as a match.

    Raises:
        ValueError: If the inputs differ in length or are empty.
    """
    truth = pd.Series(np.asarray(truth, dtype=object), name='truth')
    prediction = pd.Series(np.asarray(prediction, dtype=object), name='prediction')
    if len(truth) != len(prediction):
        raise ValueError(f"Length mismatch: {len(truth)} labels vs {len(prediction)} predictions")
    if len(truth) == 0:
        raise ValueError("Cannot compute accuracy of empty label sequences")

    observed = truth.notna() & prediction.notna()
    if not observed.any():
        return 0.0
    tbl = pd.crosstab(truth[observed], prediction[observed])
    labels = tbl.index.union(tbl.columns)
    tbl = tbl.reindex(index=labels, columns=labels, fill_value=0).to_numpy()
    return float(np.trace(tbl) / len(truth))


def _ratio(num: float, den: float) -> float:
    return float(num / den) if den else np.nan


@dataclass
class ConfusionMatrixReport:
    """Confusion table (rows = prediction, columns = reference) and its statistics."""

    table: pd.DataFrame
    overall: Dict[str, float]
    by_class: pd.DataFrame
    positive: Optional[str] = None

    def __str__(self) -> str:
        ci_low, ci_high = self.overall['AccuracyLower'], self.overall['AccuracyUpper']
        lines = [
            "Confusion Matrix and Statistics",
            "",
            self.table.to_string(),
            "",
            f"               Accuracy : {self.overall['Accuracy']:.4f}",
            f"                 95% CI : ({ci_low:.4f}, {ci_high:.4f})",
            f"    No Information Rate : {self.overall['AccuracyNull']:.4f}",
            f"    P-Value [Acc > NIR] : {self.overall['AccuracyPValue']:.4g}",
            "",
            f"                  Kappa : {self.overall['Kappa']:.4f}",
        ]
        if not np.isnan(self.overall['McnemarPValue']):
            lines.append(f" Mcnemar's Test P-Value : {self.overall['McnemarPValue']:.4g}")
        lines += ["", "Statistics by Class:", "", self.by_class.T.to_string(float_format=lambda x: f"{x:.4f}")]
        if self.positive is not None:
            lines += ["", f"       'Positive' Class : {self.positive}"]
        return "\n".join(lines)


def confusion_matrix_report(
    reference: Sequence,
    predicted: Sequence,
    positive: Optional[str] = None,
    labels: Optional[Sequence[str]] = None,
) -> ConfusionMatrixReport:
    """
    Confusion matrix with accuracy, its exact 95% CI, no-information rate,
    Kappa and per-class statistics.

    Args:
        reference: True labels.
        predicted: Predicted labels.
        positive: Class of interest for two-class problems (defaults to the
            first level). Statistics by class are reported for it only.
        labels: Label order (defaults to the reference levels, then any
            extra predicted labels).

    Returns:
        ConfusionMatrixReport.
    """
    ref = np.asarray([str(v) for v in reference], dtype=object)
    pred = np.asarray([str(v) for v in predicted], dtype=object)
    if len(ref) != len(pred):
        raise ValueError(f"Length mismatch: {len(ref)} references vs {len(pred)} predictions")
    if len(ref) == 0:
        raise ValueError("Cannot build a confusion matrix from empty inputs")

    if labels is None:
        dtype = getattr(reference, 'dtype', None)
        if isinstance(dtype, pd.CategoricalDtype):
            labels = [str(c) for c in dtype.categories]
        else:
            labels = sorted(set(ref), key=str)
        labels = list(labels) + sorted(set(pred) - set(labels))
    labels = [str(label) for label in labels]

    cm = confusion_matrix(ref, pred, labels=labels)
    n = int(cm.sum())
    correct = int(np.trace(cm))

    test = stats.binomtest(correct, n)
    ci = test.proportion_ci(confidence_level=0.95, method='exact')
    nir = cm.sum(axis=1).max() / n

    mcnemar_p = np.nan
    if len(labels) == 2:
        b, c = cm[0, 1], cm[1, 0]
        if b + c > 0:
            mcnemar_p = float(stats.chi2.sf((abs(b - c) - 1) ** 2 / (b + c), 1))

    overall = {
        'Accuracy': correct / n,
        'Kappa': float(cohen_kappa_score(ref, pred, labels=labels)),
        'AccuracyLower': float(ci.low),
        'AccuracyUpper': float(ci.high),
        'AccuracyNull': float(nir),
        'AccuracyPValue': float(stats.binomtest(correct, n, nir, alternative='greater').pvalue),
        'McnemarPValue': mcnemar_p,
    }

    if len(labels) == 2:
        positive = str(positive) if positive is not None else labels[0]
        if positive not in labels:
            raise ValueError(f"Positive class '{positive}' is not one of {labels}")
        class_labels = [positive]
    else:
        class_labels = labels

    rows = {}
    for label in class_labels:
        i = labels.index(label)
        tp = cm[i, i]
        fn = cm[i, :].sum() - tp
        fp = cm[:, i].sum() - tp
        tn = n - tp - fn - fp
        sensitivity = _ratio(tp, tp + fn)
        specificity = _ratio(tn, tn + fp)
        precision = _ratio(tp, tp + fp)
        rows[label] = {
            'Sensitivity': sensitivity,
            'Specificity': specificity,
            'Pos Pred Value': precision,
            'Neg Pred Value': _ratio(tn, tn + fn),
            'Precision': precision,
            'Recall': sensitivity,
            'F1': _ratio(2 * precision * sensitivity, precision + sensitivity),
            'Prevalence': _ratio(tp + fn, n),
            'Detection Rate': _ratio(tp, n),
            'Detection Prevalence': _ratio(tp + fp, n),
            'Balanced Accuracy': (sensitivity + specificity) / 2,
        }

    table = pd.DataFrame(
        cm.T,
        index=pd.Index(labels, name='Prediction'),
        columns=pd.Index(labels, name='Reference'),
    )
    return ConfusionMatrixReport(
        table=table,
        overall=overall,
        by_class=pd.DataFrame(rows).T,
        positive=positive if len(labels) == 2 else None,
    )


def predict_with_threshold(
    proba: pd.DataFrame,
    positive: str,
    negative: str,
    threshold: float = 0.5,
) -> pd.Series:
    """
    Predict ``positive`` whenever its probability reaches ``threshold``.

    Lowering the threshold below 0.5 biases the classifier towards the
    positive class, the same as making a missed positive more expensive.
    """
    scores = proba[positive].to_numpy()
    return pd.Series(
        pd.Categorical(np.where(scores >= threshold, positive, negative), categories=[negative, positive]),
        index=proba.index,
    )


@dataclass
class RocResult:
    """ROC curve points and the area under the curve."""

    fpr: np.ndarray
    tpr: np.ndarray
    thresholds: np.ndarray
    auc: float

    def __str__(self) -> str:
        return f"ROC curve: {len(self.thresholds)} thresholds\nArea under the curve: {self.auc:.4f}"


def roc_analysis(truth: Sequence, scores: Sequence[float], positive: Any = True) -> RocResult:
    """
    ROC curve over all probability cutoffs for a binary classifier.

    Args:
        truth: True labels (or booleans when ``positive`` is True).
        scores: Predicted probability of the positive class.
        positive: Label counted as positive.

    Returns:
        RocResult.
    """
    y = np.asarray([v == positive or str(v) == str(positive) for v in truth])
    if y.all() or not y.any():
        raise ValueError("ROC analysis needs both positive and negative cases")

    fpr, tpr, thresholds = roc_curve(y, np.asarray(scores, dtype=float))
    return RocResult(fpr=fpr, tpr=tpr, thresholds=thresholds, auc=float(roc_auc_score(y, scores)))


def _slug(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9]+', '_', name).strip('_').lower()


def _save_figure(fig: plt.Figure, filename: str, label: str) -> None:
    ensure_output_dirs()
    path = PLOTS_DIR / filename
    fig.savefig(path, dpi=150, bbox_inches='tight')
    print(f"✅ Saved {label} to {path}")


class ModelEvaluator:
    """
    Collects confusion-matrix reports for several models and draws the walkthrough's plots.
    """

    def __init__(self, positive: Optional[str] = None):
        """
        Args:
            positive: Class of interest for two-class problems.
        """
        self.positive = positive
        self.results: Dict[str, Dict[str, Any]] = {}

    def evaluate_model(
        self,
        model_name: str,
        y_true: Sequence,
        y_pred: Sequence,
        y_proba: Optional[Sequence[float]] = None,
    ) -> ConfusionMatrixReport:
        """
        Compute the confusion matrix statistics for a model and store them.

        Args:
            model_name: Name of the model.
            y_true: True labels.
            y_pred: Predicted labels.
            y_proba: Predicted probability of the positive class (optional).

        Returns:
            ConfusionMatrixReport.
        """
        report = confusion_matrix_report(y_true, y_pred, positive=self.positive)
        self.results[model_name] = {
            'report': report,
            'y_true': y_true,
            'y_pred': y_pred,
            'y_proba': y_proba,
        }
        return report

    def print_report(self, model_name: str) -> None:
        """Print the confusion matrix statistics of a model."""
        if model_name not in self.results:
            raise ValueError(f"Model '{model_name}' not evaluated yet.")

        print(f"\n{'='*60}")
        print(f"📊 CONFUSION MATRIX: {model_name.upper()}")
        print('='*60)
        print(self.results[model_name]['report'])

    def get_comparison_table(self, sort_by: Optional[str] = None) -> pd.DataFrame:
        """
        Get comparison table of all evaluated models.

        Returns:
            DataFrame with overall statistics (and positive-class statistics
            for two-class problems), one row per model.
        """
        if not self.results:
            raise ValueError("No models evaluated yet.")

        comparison_data = []
        for model_name, result in self.results.items():
            report = result['report']
            row = {
                'Model': model_name,
                'Accuracy': report.overall['Accuracy'],
                'Kappa': report.overall['Kappa'],
                'NIR': report.overall['AccuracyNull'],
            }
            if report.positive is not None:
                stats_row = report.by_class.loc[report.positive]
                row['Sensitivity'] = stats_row['Sensitivity']
                row['Specificity'] = stats_row['Specificity']
                row['Balanced Accuracy'] = stats_row['Balanced Accuracy']
            comparison_data.append(row)

        df = pd.DataFrame(comparison_data)
        if sort_by is not None:
            df = df.sort_values(sort_by, ascending=False)
        return df

    def print_comparison_summary(self) -> None:
        """Print a summary comparison of all models."""
        df = self.get_comparison_table()

        print("\n" + "="*80)
        print("📊 MODEL COMPARISON SUMMARY")
        print("="*80)
        print(df.to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    def plot_confusion_matrix(
        self,
        model_name: str,
        normalize: bool = False,
        figsize: tuple = (8, 6),
        save: bool = True
    ) -> plt.Figure:
        """
        Plot confusion matrix for a model.

        Args:
            model_name: Name of the model.
            normalize: If True, normalize by reference class.
            figsize: Figure size.
            save: If True, save the plot.

        Returns:
            Matplotlib figure.
        """
        if model_name not in self.results:
            raise ValueError(f"Model '{model_name}' not evaluated yet.")

        # Reference on rows for the heatmap
        cm = self.results[model_name]['report'].table.T
        labels = list(cm.index)
        values = cm.to_numpy()

        if normalize:
            row_sums = values.sum(axis=1)[:, np.newaxis]
            values = np.divide(values, row_sums, out=np.zeros(values.shape), where=row_sums > 0)
            fmt = '.2f'
            title = f'Normalized Confusion Matrix - {model_name}'
        else:
            fmt = 'd'
            title = f'Confusion Matrix - {model_name}'

        fig, ax = plt.subplots(figsize=figsize)

        sns.heatmap(
            values,
            annot=True,
            fmt=fmt,
            cmap='Blues',
            xticklabels=labels,
            yticklabels=labels,
            ax=ax,
            cbar_kws={'label': 'Proportion' if normalize else 'Count'}
        )

        ax.set_xlabel('Predicted Label', fontsize=12)
        ax.set_ylabel('True Label', fontsize=12)
        ax.set_title(title, fontsize=14, fontweight='bold')

        fig.tight_layout()

        if save:
            _save_figure(fig, f'confusion_matrix_{_slug(model_name)}.png', 'confusion matrix')

        return fig

    def plot_roc_curve(
        self,
        roc: RocResult,
        model_name: str,
        figsize: tuple = (7, 6),
        save: bool = True
    ) -> plt.Figure:
        """
        Plot a binary ROC curve with its AUC.

        Args:
            roc: Result of ``roc_analysis``.
            model_name: Name used in the legend and file name.
            figsize: Figure size.
            save: If True, save the plot.

        Returns:
            Matplotlib figure.
        """
        fig, ax = plt.subplots(figsize=figsize)

        ax.plot(roc.fpr, roc.tpr, lw=2, label=f'{model_name} (AUC={roc.auc:.3f})')
        ax.plot([0, 1], [0, 1], 'k--', lw=1)
        ax.set_xlim([0.0, 1.0])
        ax.set_ylim([0.0, 1.05])
        ax.set_xlabel('False Positive Rate (1 - Specificity)')
        ax.set_ylabel('True Positive Rate (Sensitivity)')
        ax.set_title('ROC Curve', fontsize=14, fontweight='bold')
        ax.legend(loc='lower right')
        ax.grid(True, alpha=0.3)

        fig.tight_layout()

        if save:
            _save_figure(fig, f'roc_curve_{_slug(model_name)}.png', 'ROC curve')

        return fig

    def plot_feature_importance(
        self,
        importance_df: pd.DataFrame,
        model_name: str,
        top_n: int = 20,
        xlabel: str = 'Importance',
        figsize: tuple = (10, 8),
        save: bool = True
    ) -> plt.Figure:
        """
        Plot feature importance (or any feature score) in descending order.

        Args:
            importance_df: DataFrame with 'feature' and 'importance' columns.
            model_name: Name of the model.
            top_n: Number of top features to show.
            xlabel: Label of the score axis.
            figsize: Figure size.
            save: If True, save the plot.

        Returns:
            Matplotlib figure.
        """
        top_features = importance_df.sort_values('importance', ascending=False).head(top_n)

        fig, ax = plt.subplots(figsize=figsize)

        colors = plt.cm.viridis(np.linspace(0.2, 0.8, len(top_features)))

        bars = ax.barh(
            range(len(top_features)),
            top_features['importance'].values,
            color=colors
        )

        ax.set_yticks(range(len(top_features)))
        ax.set_yticklabels(top_features['feature'].values)
        ax.invert_yaxis()

        ax.set_xlabel(xlabel, fontsize=12)
        ax.set_ylabel('Feature', fontsize=12)
        ax.set_title(f'Top {len(top_features)} Features - {model_name}',
                    fontsize=14, fontweight='bold')

        for bar, val in zip(bars, top_features['importance'].values):
            ax.text(val, bar.get_y() + bar.get_height()/2,
                   f' {val:.3f}', va='center', fontsize=9)

        fig.tight_layout()

        if save:
            _save_figure(fig, f'feature_importance_{_slug(model_name)}.png', 'feature importance')

        return fig

    def plot_metrics_comparison(
        self,
        metrics: Optional[List[str]] = None,
        figsize: tuple = (12, 6),
        save: bool = True
    ) -> plt.Figure:
        """
        Plot bar chart comparing key metrics across models.

        Args:
            metrics: Columns of the comparison table to plot.
            figsize: Figure size.
            save: If True, save the plot.

        Returns:
            Matplotlib figure.
        """
        df = self.get_comparison_table()

        if metrics is None:
            metrics = [m for m in ['Accuracy', 'Kappa', 'Sensitivity', 'Specificity'] if m in df.columns]

        fig, ax = plt.subplots(figsize=figsize)

        x = np.arange(len(df))
        width = 0.8 / len(metrics)

        colors = ['#2ecc71', '#3498db', '#e74c3c', '#9b59b6', '#f1c40f']

        for i, metric in enumerate(metrics):
            offset = (i - len(metrics)/2 + 0.5) * width
            bars = ax.bar(x + offset, df[metric].fillna(0), width, label=metric, color=colors[i % len(colors)])

            for bar in bars:
                height = bar.get_height()
                ax.annotate(f'{height:.2f}',
                           xy=(bar.get_x() + bar.get_width()/2, height),
                           xytext=(0, 3),
                           textcoords="offset points",
                           ha='center', va='bottom', fontsize=8, rotation=45)

        ax.set_ylabel('Score', fontsize=12)
        ax.set_title('Model Performance Comparison', fontsize=14, fontweight='bold')
        ax.set_xticks(x)
        ax.set_xticklabels(df['Model'], fontsize=10, rotation=15)
        ax.legend(loc='lower right')
        ax.set_ylim(min(0, float(df[metrics].min().min())), 1.15)
        ax.grid(True, alpha=0.3, axis='y')

        fig.tight_layout()

        if save:
            _save_figure(fig, 'metrics_comparison.png', 'metrics comparison')

        return fig

    def plot_class_distribution(
        self,
        y: pd.Series,
        title: str = 'Class distribution',
        figsize: tuple = (8, 5),
        save: bool = True
    ) -> plt.Figure:
        """Horizontal bar chart of class counts (empty levels included)."""
        counts = pd.Series(y).value_counts(sort=False)

        fig, ax = plt.subplots(figsize=figsize)
        sns.barplot(x=counts.values, y=[str(c) for c in counts.index], color='#3498db', ax=ax)
        ax.set_xlabel('count')
        ax.set_ylabel(str(getattr(y, 'name', '') or 'class'))
        ax.set_title(title, fontsize=14, fontweight='bold')

        fig.tight_layout()

        if save:
            _save_figure(fig, f'class_distribution_{_slug(title)}.png', 'class distribution')

        return fig

    def plot_tuning_curve(
        self,
        result,
        figsize: tuple = (8, 5),
        save: bool = True
    ) -> plt.Figure:
        """Resampled performance against the tuning parameter of a TrainResult."""
        param = list(result.best_params)[0]
        results = result.results.sort_values(param)

        fig, ax = plt.subplots(figsize=figsize)
        ax.plot(results[param], results[result.metric], marker='o', lw=2)
        ax.set_xlabel(param)
        ax.set_ylabel(f'{result.metric} (resampled)')
        ax.set_title(f'Tuning - {result.method}', fontsize=14, fontweight='bold')
        ax.grid(True, alpha=0.3)

        fig.tight_layout()

        if save:
            _save_figure(fig, f'tuning_{_slug(result.method)}_{_slug(result.metric)}.png', 'tuning curve')

        return fig

    def plot_tree(
        self,
        model,
        name: str,
        figsize: tuple = (16, 10),
        save: bool = True
    ) -> plt.Figure:
        """
        Draw a fitted tree pipeline.

        Each node shows its split, the class counts reaching it and the
        majority class.
        """
        estimator = model.named_steps['model']
        feature_names = list(model.named_steps['encode'].get_feature_names_out())

        fig, ax = plt.subplots(figsize=figsize)
        sk_plot_tree(
            estimator,
            feature_names=feature_names,
            class_names=[str(c) for c in estimator.classes_],
            filled=True,
            impurity=False,
            proportion=False,
            rounded=True,
            fontsize=8,
            ax=ax,
        )
        ax.set_title(f'Decision Tree - {name}', fontsize=14, fontweight='bold')

        if save:
            _save_figure(fig, f'tree_{_slug(name)}.png', 'tree diagram')

        return fig

    def plot_resamples(
        self,
        comparison,
        metric: str = 'Accuracy',
        figsize: tuple = (6, 6),
        save: bool = True
    ) -> plt.Figure:
        """
        Scatter the per-resample scores of the first two compared models.

        Points on the diagonal are resamples where both models score the same.
        """
        first, second = comparison.models[:2]
        x = comparison.values[f"{first}~{metric}"]
        y = comparison.values[f"{second}~{metric}"]

        fig, ax = plt.subplots(figsize=figsize)
        ax.scatter(x, y, s=40, alpha=0.7)
        low = float(np.nanmin([x.min(), y.min()]))
        ax.plot([low, 1], [low, 1], 'k--', lw=1)
        ax.set_xlabel(f'{first} {metric}')
        ax.set_ylabel(f'{second} {metric}')
        ax.set_title(f'{metric} per resample', fontsize=14, fontweight='bold')
        ax.grid(True, alpha=0.3)

        fig.tight_layout()

        if save:
            _save_figure(fig, f'resamples_{_slug(metric)}.png', 'resample comparison')

        return fig
