"""
Zoo Classification Walkthrough

Classification basics on the UCI Zoo data: decision trees, resampled model
evaluation, model comparison, feature selection and class imbalance.

Modules:
    - config: Paths, seeds and tree / imbalance settings
    - data_loader: Data loading and initial inspection
    - preprocessing: Feature encoding, partitions and relabeling
    - sampling: Stratified resampling, SMOTE-NC and class weights
    - models: Tree fitting, resampled tuning and model comparison
    - feature_selection: Feature scores, CFS and subset search
    - evaluation: Accuracy, confusion-matrix statistics, ROC and plots
    - main: The walkthrough, section by section
"""

__version__ = "1.0.0"
__author__ = "Zoo Classification Project"
