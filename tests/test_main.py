"""Tests for the walkthrough entry point."""

import sys

import pytest
from pytest_check import check

from zoo_classification.main import SECTIONS, main, parse_args, run

QUIET = ["--no-plots", "--n-jobs", "1"]


class TestParseArgs:
    """Tests for the command line."""

    def test_defaults_run_every_section(self) -> None:
        """Without flags every section runs, plots are on and no search is run."""
        # Act
        args = parse_args([])

        # Assert
        with check:
            assert args.sections == SECTIONS
        with check:
            assert args.no_plots is False
        with check:
            assert args.feature_search == "none"

    def test_unknown_section_is_rejected(self) -> None:
        """Section names are checked."""
        with pytest.raises(SystemExit):
            parse_args(["--sections", "clustering"])


class TestMain:
    """Tests for the console entry point."""

    def test_successful_run_exits_with_status_zero(self, capsys) -> None:
        """The console script wrapper passes main's return value to sys.exit."""
        # Act
        with pytest.raises(SystemExit) as exc:
            sys.exit(main(QUIET + ["--sections", "decision_trees"]))
        captured = capsys.readouterr()

        # Assert
        with check:
            assert exc.value.code == 0
        with check:
            assert "Done!" in captured.out
        with check:
            assert "ModelTrainer" not in captured.err


class TestSections:
    """Smoke tests for single sections."""

    def test_decision_trees_section(self, capsys) -> None:
        """The decision tree section fits both trees and classifies the new animal."""
        # Act
        trainer = run(QUIET + ["--sections", "decision_trees"])
        out = capsys.readouterr().out

        # Assert
        with check:
            assert {"tree_default", "tree_full"} <= set(trainer.models)
        with check:
            assert "feathered lion" in out
        with check:
            assert "Confusion Matrix and Statistics" in out

    def test_model_evaluation_section(self, capsys) -> None:
        """The tuned tree is trained on the training part and scored on the test part."""
        # Act
        trainer = run(QUIET + ["--sections", "model_evaluation"])
        out = capsys.readouterr().out

        # Assert
        with check:
            assert trainer.models["rpart_tuned"].n_samples == 81
        with check:
            assert "Permutation importance" in out
        with check:
            assert "Confusion Matrix and Statistics" in out

    def test_model_comparison_section(self, capsys) -> None:
        """CART and kNN are resampled on the same folds and compared."""
        # Act
        trainer = run(QUIET + ["--sections", "model_comparison"])
        out = capsys.readouterr().out
        cart = trainer.models["CART"].resample
        knn = trainer.models["kNearestNeighbors"].resample

        # Assert
        with check:
            assert len(cart) == len(knn) == 10
        with check:
            assert "Differences" in out

    def test_feature_selection_section(self, capsys) -> None:
        """Scores, the top-k tree, CFS and one subset evaluation are printed."""
        # Act
        trainer = run(QUIET + ["--sections", "feature_selection"])
        out = capsys.readouterr().out

        # Assert
        with check:
            assert {"top_features", "subset_evaluator"} <= set(trainer.models)
        with check:
            assert "CFS selected" in out
        with check:
            assert "Trying features:" in out

    def test_dummy_variables_section(self) -> None:
        """The dummy variable section trains the predator models."""
        # Act
        trainer = run(QUIET + ["--sections", "dummy_variables"])

        # Assert
        assert {"predator_type", "predator_dummy", "predator_train"} <= set(trainer.models)

    def test_class_imbalance_section(self, capsys) -> None:
        """Every imbalance option trains a model and is compared on the test part."""
        # Act
        trainer = run(QUIET + ["--sections", "class_imbalance"])
        out = capsys.readouterr().out

        # Assert
        with check:
            assert {
                "reptile_as_is", "reptile_balanced", "reptile_oversampled",
                "reptile_smote", "reptile_roc", "reptile_cost",
            } <= set(trainer.models)
        with check:
            assert "Area under the curve" in out
        with check:
            assert "threshold 0.01" in out
        with check:
            assert "cost-sensitive" in out
