#!/usr/bin/env python3
"""
Zoo classification walkthrough: decision trees, model evaluation, model
comparison, feature selection, dummy variables and class imbalance.

Usage:
    zoo-walkthrough                              # Run every section
    zoo-walkthrough --no-plots                   # Skip plots
    zoo-walkthrough --sections class_imbalance   # Run selected sections
    zoo-walkthrough --feature-search forward     # Also run a (slow) subset search
    zoo-walkthrough --data-path PATH             # Custom dataset path
"""
import argparse
import sys
import warnings

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from zoo_classification.config import (
    PLOTS_DIR, RANDOM_STATE, N_JOBS, N_SPLITS, TUNE_LENGTH, COMPARISON_TUNE_LENGTH,
    TARGET_COLUMN, ID_COLUMN, FULL_TREE_PARAMS, N_TOP_FEATURES,
    POSITIVE_CLASS, NEGATIVE_CLASS, IMBALANCE_TRAIN_FRACTION, IMBALANCE_SPLIT_SEED,
    RESAMPLE_SEED, BALANCED_SIZES, SENSITIVE_SIZES, PROBABILITY_THRESHOLD, COST_MATRIX,
)
from zoo_classification.data_loader import (
    load_data, print_data_report, check_data_types, get_feature_columns, make_animal
)
from zoo_classification.preprocessing import (
    create_data_partition, create_folds, relabel_binary, class_to_indicators
)
from zoo_classification.sampling import stratified_sample, apply_smote, cost_matrix_to_class_weight
from zoo_classification.models import (
    ModelTrainer, compare_resamples, parallel_backend, worker_count, tree_to_text
)
from zoo_classification.feature_selection import (
    chi_squared, gain_ratio, cutoff_k, as_simple_formula, cfs, make_subset_evaluator,
    forward_search, backward_search, best_first_search, hill_climbing_search,
)
from zoo_classification.evaluation import (
    ModelEvaluator, accuracy, predict_with_threshold, roc_analysis
)

# Tiny classes (amphibians, reptiles) cannot fill every fold
warnings.filterwarnings('ignore', message='The least populated class')

SECTIONS = [
    'decision_trees',
    'model_evaluation',
    'model_comparison',
    'feature_selection',
    'dummy_variables',
    'class_imbalance',
]

SEARCHES = {
    'forward': forward_search,
    'backward': backward_search,
    'best-first': best_first_search,
    'hill-climbing': hill_climbing_search,
}


def banner(title: str) -> None:
    print("\n" + "="*60)
    print(f"🌿 {title}")
    print("="*60)


def decision_trees(df: pd.DataFrame, trainer: ModelTrainer, evaluator: ModelEvaluator, plots: bool) -> None:
    banner("DECISION TREES")
    features = get_feature_columns(df)

    # Default tree (pre-pruned)
    tree_default = trainer.fit_tree(df, name='tree_default')
    print("\n🌳 Tree with default settings:")
    print(tree_to_text(tree_default))

    # Full tree: split down to two rows, no complexity penalty
    tree_full = trainer.fit_tree(df, name='tree_full', **FULL_TREE_PARAMS)
    print("\n🌳 Full tree:")
    print(tree_to_text(tree_full))

    if plots:
        evaluator.plot_tree(tree_default, 'default')
        evaluator.plot_tree(tree_full, 'full', figsize=(24, 12))

    proba = pd.DataFrame(tree_default.predict_proba(df[features]), columns=tree_default.classes_)
    print("\n📊 Class probabilities (first rows):")
    print(proba.head().round(3).to_string())

    pred = pd.Categorical(tree_default.predict(df[features]), categories=df[TARGET_COLUMN].cat.categories)
    confusion_table = pd.crosstab(df[TARGET_COLUMN], pred, rownames=['type'], colnames=['pred'], dropna=False)
    print("\n📋 Confusion table (training data):")
    print(confusion_table.to_string())

    correct = int(np.trace(confusion_table.to_numpy()))
    error = int(confusion_table.to_numpy().sum()) - correct
    print(f"\n   Correct: {correct}")
    print(f"   Error:   {error}")
    print(f"   Accuracy: {correct / (correct + error):.4f}")

    print(f"\n   Training accuracy (default tree): {accuracy(df[TARGET_COLUMN], pred):.4f}")
    full_pred = tree_full.predict(df[features])
    print(f"   Training accuracy (full tree):    {accuracy(df[TARGET_COLUMN], full_pred):.4f}")

    evaluator.evaluate_model('default tree (training)', df[TARGET_COLUMN], pred)
    evaluator.print_report('default tree (training)')

    # A lion with feathered wings
    my_animal = make_animal(
        df, hair=True, feathers=True, eggs=False, milk=True, airborne=True,
        aquatic=False, predator=True, toothed=True, backbone=True, breathes=True,
        venomous=False, fins=False, legs=4, tail=True, domestic=False, catsize=False,
    )
    prediction = tree_default.predict(my_animal[features])
    print(f"\n🦁 New animal (feathered lion) is predicted as: {prediction[0]}")


def model_evaluation(
    training: pd.DataFrame,
    testing: pd.DataFrame,
    trainer: ModelTrainer,
    evaluator: ModelEvaluator,
    plots: bool,
) -> None:
    banner("MODEL EVALUATION")
    print(f"   Parallel workers: {worker_count()}")

    fit = trainer.train(
        training,
        resampling='cv',
        number=N_SPLITS,
        tune_length=TUNE_LENGTH,
        model_params={'min_samples_split': 2},
        name='rpart_tuned',
    )
    print()
    print(fit)

    importance = trainer.get_feature_importance(fit)
    print("\n📊 Variable importance (Gini decrease of the chosen splits):")
    print(importance.to_string(index=False, float_format=lambda x: f"{x:.2f}"))

    permuted = trainer.get_feature_importance(fit, method='permutation', df=testing)
    print("\n📊 Permutation importance (test data):")
    print(permuted.head(10).to_string(index=False, float_format=lambda x: f"{x:.2f}"))

    pred = fit.predict(testing)
    print("\n🔮 Predictions (first rows):", ", ".join(str(p) for p in pred.head()))
    evaluator.evaluate_model('tuned tree (test)', testing[TARGET_COLUMN], pred)
    evaluator.print_report('tuned tree (test)')

    if plots:
        evaluator.plot_tuning_curve(fit)
        evaluator.plot_tree(fit.final_model, 'tuned')
        evaluator.plot_feature_importance(importance, 'tuned tree')
        evaluator.plot_confusion_matrix('tuned tree (test)')


def model_comparison(df: pd.DataFrame, trainer: ModelTrainer, evaluator: ModelEvaluator,
                     plots: bool, seed: int) -> None:
    banner("MODEL COMPARISON")

    # Same folds for both models
    folds = create_folds(df[TARGET_COLUMN], k=N_SPLITS, random_state=seed)

    rpart_fit = trainer.train(df, method='rpart', folds=folds,
                              tune_length=COMPARISON_TUNE_LENGTH, name='CART')
    knn_fit = trainer.train(df, method='knn', folds=folds,
                            tune_length=COMPARISON_TUNE_LENGTH, name='kNearestNeighbors')
    print()
    print(knn_fit)

    resamps = compare_resamples({'CART': rpart_fit, 'kNearestNeighbors': knn_fit})
    for metric, table in resamps.summary().items():
        print(f"\n📊 {metric}")
        print(table.to_string(float_format=lambda x: f"{x:.4f}"))

    print("\n📊 Differences (paired t-test, Bonferroni adjusted):")
    print(resamps.diff().to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    if plots:
        evaluator.plot_resamples(resamps)


def feature_selection(
    training: pd.DataFrame,
    trainer: ModelTrainer,
    evaluator: ModelEvaluator,
    plots: bool,
    seed: int,
    search: str = 'none',
) -> None:
    banner("FEATURE SELECTION")

    weights = chi_squared(training)
    print("\n📊 Chi-squared scores (Cramér's V):")
    print(weights.to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    subset = cutoff_k(weights, N_TOP_FEATURES)
    print(f"\n   Best {N_TOP_FEATURES} features: {subset}")
    print(f"   Formula: {as_simple_formula(subset)}")

    top_tree = trainer.fit_tree(training, features=subset, name='top_features')
    print(tree_to_text(top_tree))

    print("\n📊 Gain ratio:")
    print(gain_ratio(training).to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    selected = cfs(training)
    print(f"\n✅ CFS selected: {selected}")

    evaluator_fn = make_subset_evaluator(training, random_state=seed, trainer=trainer)
    print()
    evaluator_fn(subset)

    if search != 'none':
        print(f"\n🔄 Running {search} search (this runs for a while)...")
        best = SEARCHES[search](get_feature_columns(training), evaluator_fn)
        print(f"\n✅ {search} search selected: {as_simple_formula(best)}")

    if plots:
        evaluator.plot_feature_importance(weights, 'chi-squared', xlabel='Importance score')
        evaluator.plot_tree(top_tree, 'top features')


def dummy_variables(training: pd.DataFrame, trainer: ModelTrainer, evaluator: ModelEvaluator, plots: bool) -> None:
    banner("DUMMY VARIABLES")

    # Predict predator from the nominal type
    tree_predator = trainer.fit_tree(training, target='predator', features=[TARGET_COLUMN],
                                     name='predator_type')
    print(tree_to_text(tree_predator))

    training_dummy = class_to_indicators(training[TARGET_COLUMN])
    training_dummy['predator'] = training['predator']
    print("\n📋 Type as 0-1 dummy variables:")
    print(training_dummy.head().to_string())

    tree_dummy = trainer.fit_tree(training_dummy, target='predator', name='predator_dummy',
                                  min_samples_split=2, ccp_alpha=0.01)
    print(tree_to_text(tree_dummy))

    # Fixed complexity: a grid with one value
    fit = trainer.train(
        training,
        target='predator',
        features=[TARGET_COLUMN],
        resampling='boot',
        number=25,
        tune_grid={'ccp_alpha': [0.01]},
        model_params={'min_samples_split': 2},
        name='predator_train',
    )
    print()
    print(fit)

    if plots:
        evaluator.plot_tree(tree_dummy, 'predator dummy')
        evaluator.plot_tree(fit.final_model, 'predator train')


def class_imbalance(df: pd.DataFrame, trainer: ModelTrainer, plots: bool, seed: int) -> ModelEvaluator:
    banner("CLASS IMBALANCE")
    evaluator = ModelEvaluator(positive=POSITIVE_CLASS)
    target = df[TARGET_COLUMN]

    zoo_reptile = relabel_binary(df, POSITIVE_CLASS)
    print("\n📊 Reptile vs. non-reptile:")
    print(zoo_reptile[TARGET_COLUMN].value_counts(sort=False).to_string())

    training_reptile, testing_reptile = create_data_partition(
        zoo_reptile, p=IMBALANCE_TRAIN_FRACTION, random_state=IMBALANCE_SPLIT_SEED
    )
    reference = testing_reptile[TARGET_COLUMN]

    print("\n--- Option 1: use the data as is ---")
    fit = trainer.train(training_reptile, resampling='cv', name='reptile_as_is')
    print(fit)
    evaluator.evaluate_model('as is', reference, fit.predict(testing_reptile))
    evaluator.print_report('as is')

    print("\n--- Option 2: balance the data with resampling ---")
    balanced = stratified_sample(training_reptile, BALANCED_SIZES, random_state=RESAMPLE_SEED)
    fit = trainer.train(balanced, resampling='cv', model_params={'min_samples_split': 5},
                        name='reptile_balanced')
    print(fit)
    evaluator.evaluate_model('balanced 50/50', reference, fit.predict(testing_reptile))
    evaluator.print_report('balanced 50/50')

    sensitive = stratified_sample(training_reptile, SENSITIVE_SIZES, random_state=RESAMPLE_SEED)
    fit = trainer.train(sensitive, resampling='cv', model_params={'min_samples_split': 5},
                        name='reptile_oversampled')
    evaluator.evaluate_model('balanced 50/100', reference, fit.predict(testing_reptile))
    evaluator.print_report('balanced 50/100')

    smoted = apply_smote(training_reptile.drop(columns=[ID_COLUMN]), random_state=seed)
    fit = trainer.train(smoted, resampling='cv', model_params={'min_samples_split': 5},
                        name='reptile_smote')
    evaluator.evaluate_model('SMOTE-NC', reference, fit.predict(testing_reptile))
    evaluator.print_report('SMOTE-NC')

    print("\n--- Option 3: larger tree, tuned on ROC, predicted probabilities ---")
    fit = trainer.train(
        training_reptile,
        resampling='cv',
        tune_length=COMPARISON_TUNE_LENGTH,
        metric='ROC',
        positive=POSITIVE_CLASS,
        model_params={'min_samples_split': 3},
        name='reptile_roc',
    )
    print(fit)
    evaluator.evaluate_model('larger tree', reference, fit.predict(testing_reptile))
    evaluator.print_report('larger tree')

    prob = fit.predict_proba(testing_reptile)
    print("\n📊 Predicted probabilities (last rows):")
    print(prob.tail().round(3).to_string())

    pred = predict_with_threshold(prob, POSITIVE_CLASS, NEGATIVE_CLASS, PROBABILITY_THRESHOLD)
    name = f'threshold {PROBABILITY_THRESHOLD}'
    evaluator.evaluate_model(name, reference, pred, prob[POSITIVE_CLASS])
    evaluator.print_report(name)

    roc = roc_analysis(reference, prob[POSITIVE_CLASS], positive=POSITIVE_CLASS)
    print(f"\n{roc}")

    print("\n--- Option 4: cost-sensitive tree ---")
    print(pd.DataFrame(COST_MATRIX, index=[NEGATIVE_CLASS, POSITIVE_CLASS],
                       columns=[NEGATIVE_CLASS, POSITIVE_CLASS]).to_string())
    class_weight = cost_matrix_to_class_weight(COST_MATRIX, [NEGATIVE_CLASS, POSITIVE_CLASS])
    fit = trainer.train(training_reptile, resampling='cv', class_weight=class_weight,
                        name='reptile_cost')
    print(fit)
    evaluator.evaluate_model('cost-sensitive', reference, fit.predict(testing_reptile))
    evaluator.print_report('cost-sensitive')

    evaluator.print_comparison_summary()

    if plots:
        evaluator.plot_class_distribution(target, title='Zoo classes')
        evaluator.plot_class_distribution(zoo_reptile[TARGET_COLUMN], title='Reptile vs non-reptile')
        evaluator.plot_roc_curve(roc, 'larger tree')
        evaluator.plot_tree(fit.final_model, 'cost-sensitive')
        evaluator.plot_metrics_comparison()

    return evaluator


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Zoo Classification Walkthrough')
    parser.add_argument('--data-path', '-d', type=str, default=None,
                       help='Path to dataset CSV')
    parser.add_argument('--no-plots', action='store_true',
                       help='Skip generating plots')
    parser.add_argument('--n-jobs', type=int, default=N_JOBS,
                       help='Parallel workers for resampling (-1 = all cores)')
    parser.add_argument('--seed', type=int, default=RANDOM_STATE,
                       help='Random seed for partitions, folds and trees')
    parser.add_argument('--sections', nargs='+', choices=SECTIONS, default=SECTIONS,
                       help='Walkthrough sections to run')
    parser.add_argument('--feature-search', choices=['none'] + list(SEARCHES), default='none',
                       help='Greedy feature subset search to run (slow)')
    return parser.parse_args(argv)


def run(argv=None) -> ModelTrainer:
    """Run the selected walkthrough sections and return the trainer holding every fitted model."""
    args = parse_args(argv)
    plots = not args.no_plots

    print("\n🦓 ZOO CLASSIFICATION WALKTHROUGH")
    print("="*50)
    print("   ✓ Sections: " + ", ".join(args.sections))

    df = load_data(args.data_path)
    print_data_report(df)
    check_data_types(df)

    trainer = ModelTrainer(random_state=args.seed)
    evaluator = ModelEvaluator()

    with parallel_backend(args.n_jobs):
        training, testing = create_data_partition(df, random_state=args.seed)

        if 'decision_trees' in args.sections:
            decision_trees(df, trainer, evaluator, plots)
            plt.close('all')
        if 'model_evaluation' in args.sections:
            model_evaluation(training, testing, trainer, evaluator, plots)
            plt.close('all')
        if 'model_comparison' in args.sections:
            model_comparison(df, trainer, evaluator, plots, args.seed)
            plt.close('all')
        if 'feature_selection' in args.sections:
            feature_selection(training, trainer, evaluator, plots, args.seed, args.feature_search)
            plt.close('all')
        if 'dummy_variables' in args.sections:
            dummy_variables(training, trainer, evaluator, plots)
            plt.close('all')
        if 'class_imbalance' in args.sections:
            class_imbalance(df, trainer, plots, args.seed)
            plt.close('all')

    summary = trainer.get_results_summary()
    if not summary.empty:
        print("\n📊 RESAMPLED PERFORMANCE OF ALL TRAINED MODELS")
        print(summary.to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    if plots:
        print(f"📁 Plots: {PLOTS_DIR}")
    print("\n✅ Done!")

    return trainer


def main(argv=None) -> int:
    run(argv)
    return 0


if __name__ == "__main__":
    sys.exit(main())
