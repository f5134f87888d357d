"""
Configuration settings for the Zoo classification walkthrough.

Tree presets follow the rpart.control defaults (minsplit=20, minbucket=7,
cp=0.01, maxdepth=30). Note that scikit-learn's ccp_alpha is measured in
weighted impurity, not relative error, so the values are analogues only.
"""
import os
from pathlib import Path

# Project paths
PACKAGE_ROOT = Path(__file__).parent
DATA_PATH = PACKAGE_ROOT / "data" / "zoo.csv"
OUTPUT_DIR = Path(os.environ.get("ZOO_OUTPUT_DIR", "output"))
PLOTS_DIR = OUTPUT_DIR / "plots"


def ensure_output_dirs() -> None:
    """Create the output directories if they don't exist."""
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    PLOTS_DIR.mkdir(parents=True, exist_ok=True)


# Data settings
TARGET_COLUMN = "type"
ID_COLUMN = "animal"
RANDOM_STATE = 42

# Class levels in factor order (mlbench encoding)
CLASS_NAMES = ["mammal", "bird", "reptile", "fish", "amphibian", "insect", "mollusc.et.al"]
N_CLASSES = len(CLASS_NAMES)

# Logical attributes become two-level categoricals with TRUE first
BOOLEAN_LEVELS = [True, False]
BOOLEAN_COLUMNS = [
    'hair', 'feathers', 'eggs', 'milk', 'airborne', 'aquatic', 'predator',
    'toothed', 'backbone', 'breathes', 'venomous', 'fins', 'tail',
    'domestic', 'catsize',
]
NUMERIC_COLUMNS = ['legs']

# Hold-out and resampling settings
TRAIN_FRACTION = 0.8
N_SPLITS = 10
TUNE_LENGTH = 5
COMPARISON_TUNE_LENGTH = 10
N_BOOTSTRAP = 5  # Resamples per call of the feature subset evaluator
N_JOBS = -1

# ============================================================================
# TREE PRESETS
# ============================================================================

DEFAULT_TREE_PARAMS = {
    'criterion': 'gini',
    'min_samples_split': 20,
    'min_samples_leaf': 7,
    'ccp_alpha': 0.01,
    'max_depth': 30,
}

# Grow until leaves are pure (overfits the training data)
FULL_TREE_PARAMS = {
    'criterion': 'gini',
    'min_samples_split': 2,
    'min_samples_leaf': 1,
    'ccp_alpha': 0.0,
    'max_depth': 30,
}

# Feature selection
N_TOP_FEATURES = 5
CFS_MAX_BACKTRACKS = 5

# ============================================================================
# CLASS IMBALANCE
# ============================================================================

POSITIVE_CLASS = "reptile"
NEGATIVE_CLASS = "nonreptile"
IMBALANCE_TRAIN_FRACTION = 0.5  # 50/50 so the test set keeps some reptiles
IMBALANCE_SPLIT_SEED = 1234
RESAMPLE_SEED = 1000

BALANCED_SIZES = {NEGATIVE_CLASS: 50, POSITIVE_CLASS: 50}
SENSITIVE_SIZES = {NEGATIVE_CLASS: 50, POSITIVE_CLASS: 100}

PROBABILITY_THRESHOLD = 0.01

# Loss matrix, rows = true class, columns = predicted class, level order
# (nonreptile, reptile). Missing a reptile costs 100.
COST_MATRIX = [
    [0, 1],
    [100, 0],
]
