"""Tests for aggregation, ECDFs and the text report."""

import numpy as np
import pytest

from exposure_system.aggregate import (
    column_ecdfs,
    ecdf,
    mean_of_reducer,
    quantile_ecdfs,
    uncertainty_summary,
)
from exposure_system.evaluators import CutLoopEvaluator, FullMatrixEvaluator, FullMatrixResult
from exposure_system.node import Role
from exposure_system.report import ExposureReport


@pytest.fixture
def results(water_model):
    kwargs = dict(nsv=80, nsu=30, seed=21)
    return (FullMatrixEvaluator(water_model, **kwargs).evaluate(),
            CutLoopEvaluator(water_model, reducers=["mean", "median", "q97.5"],
                             **kwargs).evaluate())


class TestMeanOfReducer:
    """Per-iteration reduction followed by a summary across iterations."""

    def test_same_estimate_from_both_forms(self, results):
        full, cut = results
        a = mean_of_reducer(full)
        b = mean_of_reducer(cut)
        assert a.mean == b.mean
        assert (a.lower, a.median, a.upper) == (b.lower, b.median, b.upper)

    def test_median_reducer(self, results):
        full, cut = results
        assert mean_of_reducer(full, "median").mean == mean_of_reducer(cut, "median").mean

    def test_interval_is_ordered(self, results):
        est = mean_of_reducer(results[0], "q97.5")
        assert est.lower <= est.median <= est.upper
        assert est.values.size == 30

    def test_known_table(self):
        # columns have means 1, 2, ..., 5
        table = np.tile(np.arange(1.0, 6.0), (4, 1))
        est = mean_of_reducer(FullMatrixResult(table, 4, 5, Role.VARIABILITY_UNCERTAINTY))
        assert est.mean == 3.0
        assert est.median == 3.0
        assert est.lower == pytest.approx(1.1)
        assert est.upper == pytest.approx(4.9)

    def test_reducer_missing_from_cut_result(self, results):
        with pytest.raises(KeyError):
            mean_of_reducer(results[1], "sd")

    def test_unsupported_result_type(self):
        with pytest.raises(TypeError):
            mean_of_reducer(np.ones((3, 3)))

    def test_to_dict(self, results):
        data = mean_of_reducer(results[0]).to_dict()
        assert set(data) == {"reducer", "mean", "q2.5", "q50", "q97.5", "n"}
        assert data["n"] == 30


class TestUncertaintySummary:
    def test_cut_result_uses_its_schema(self, results):
        summary = uncertainty_summary(results[1])
        assert list(summary) == ["mean", "median", "q97.5"]
        assert set(summary["mean"]) == {"median", "mean", "q2.5", "q97.5"}

    def test_full_and_cut_agree(self, results):
        full, cut = results
        assert (uncertainty_summary(full, ["mean", "median", 0.975])
                == uncertainty_summary(cut))

    def test_interval_brackets_median(self, results):
        for row in uncertainty_summary(results[0]).values():
            assert row["q2.5"] <= row["median"] <= row["q97.5"]


class TestECDF:
    """Right-continuous empirical distribution functions."""

    def test_steps_with_ties(self):
        F = ecdf([3.0, 1.0, 2.0, 2.0])
        assert F.x.tolist() == [1.0, 2.0, 3.0]
        assert F.F.tolist() == [0.25, 0.75, 1.0]
        assert F.n == 4

    def test_evaluation(self):
        F = ecdf([3.0, 1.0, 2.0, 2.0])
        assert F(0.5) == 0.0
        assert F(1.0) == 0.25
        assert F(2.5) == 0.75
        assert F(3.0) == 1.0
        assert F(100.0) == 1.0
        assert F([0.0, 2.0]).tolist() == [0.0, 0.75]

    def test_monotone_and_bounded(self):
        sample = np.random.default_rng(0).lognormal(size=500)
        F = ecdf(sample)
        assert np.all(np.diff(F.F) > 0)
        assert np.all((F.F > 0) & (F.F <= 1))
        assert F.F[-1] == 1.0
        assert F(sample.max()) == 1.0

    def test_single_value(self):
        F = ecdf([7.0])
        assert F.steps() == [(7.0, 1.0)]

    def test_quantile(self):
        F = ecdf([1.0, 2.0, 3.0, 4.0])
        assert F.quantile(0.5) == 2.0
        assert F.quantile(0.51) == 3.0
        assert F.quantile(1.0) == 4.0
        with pytest.raises(ValueError):
            F.quantile(1.5)

    @pytest.mark.parametrize("bad", [[], [1.0, np.nan], [np.inf]])
    def test_rejects_empty_or_non_finite(self, bad):
        with pytest.raises(ValueError):
            ecdf(bad)

    def test_quantile_ecdfs_match_between_forms(self, results):
        full, cut = results
        from_full = quantile_ecdfs(full, ["median", "q97.5"])
        from_cut = quantile_ecdfs(cut, ["median", "q97.5"])
        assert list(from_full) == ["median", "q97.5"]
        for label in from_full:
            assert np.array_equal(from_full[label].x, from_cut[label].x)
            assert np.array_equal(from_full[label].F, from_cut[label].F)

    def test_column_ecdfs(self, results):
        curves = column_ecdfs(results[0], columns=[0, 5])
        assert len(curves) == 2
        assert all(c.n == 80 for c in curves)


class TestReport:
    def test_full_matrix_report(self, results, water_model):
        text = ExposureReport.generate(results[0], model=water_model)
        assert "EXPOSURE ASSESSMENT: drinking_water_dose" in text
        assert "Full-Matrix" in text
        assert "MODEL NODES" in text
        assert "log_removal" in text
        assert "95% uncertainty interval" in text

    def test_cut_loop_report(self, results):
        text = ExposureReport.generate(results[1], title="Cut run")
        assert "Cut run" in text
        assert "Peak sample size:   80" in text
        assert "MODEL NODES" not in text

    def test_comparison(self, results):
        text = ExposureReport.comparison(*results)
        assert "Full-Matrix" in text and "Cut-Loop" in text
        assert len(text.splitlines()) == 5
