"""Tests for the OLS fit, error metrics, cross-validation and Moran's I."""

import numpy as np
import pandas as pd
import pytest

from conftest import points
from phl_hedonic import config
from phl_hedonic.evaluation import (cross_validate, error_summary, income_context,
                                    morans_i, prediction_errors)
from phl_hedonic.model import coefficient_table, fit_ols, predict
from phl_hedonic.partition import modeling_set, stratified_split

TRUE_COEFS = {
    "const": 50_000.0,
    "total_livable_area": 120.0,
    "fireplaces": 8_000.0,
    "crime_nn3": -15.0,
    "parks_buffer": 3_000.0,
    "price_lag": 0.5,
}


def alternate(test):
    """+1 / -1 over the test rows in index order: 200 of each for 400 rows."""
    order = np.sort(test.index.to_numpy())
    return pd.Series(np.where(np.arange(len(order)) % 2 == 0, 1.0, -1.0), index=order)


class TestEndToEndScenario:
    """
    1,000 parcels, fixed features and seed: split, fit, test-set errors.

    Training prices are exact, so the fit recovers TRUE_COEFS and predicts
    the exact price of every test record. Test prices are then perturbed by
    a known amount, which fixes the reference errors in closed form.
    """

    def split(self, modeling_frame):
        modeling = modeling_set(modeling_frame)
        return stratified_split(modeling, random_state=config.RANDOM_STATE)

    def test_split_and_fit(self, modeling_frame):
        train, test = self.split(modeling_frame)
        assert (len(train), len(test)) == (600, 400)

        results = fit_ols(train, config.MODEL_FEATURES)
        assert list(results.params.index) == ["const"] + config.MODEL_FEATURES
        for name, value in TRUE_COEFS.items():
            assert results.params[name] == pytest.approx(value, rel=1e-6)
        assert results.rsquared == pytest.approx(1.0)

    def test_split_is_pinned_by_seed(self, modeling_frame):
        _, a = self.split(modeling_frame)
        _, b = self.split(modeling_frame.copy())
        _, other = stratified_split(modeling_frame, random_state=config.RANDOM_STATE + 1)

        assert a.index.tolist() == b.index.tolist()
        assert set(a.index) != set(other.index)

    def test_relative_noise_reference_mape(self, modeling_frame):
        train, test = self.split(modeling_frame)
        results = fit_ols(train, config.MODEL_FEATURES)

        # Half the test prices 5% above the model, half 5% below
        exact = test[config.PRICE_COL].copy()
        test[config.PRICE_COL] = exact * (1 + 0.05 * alternate(test))

        overall = error_summary(prediction_errors(results, test, config.MODEL_FEATURES))

        # mean(0.05/1.05, 0.05/0.95) = 0.05/0.9975
        assert overall["MAPE"].iloc[0] == pytest.approx(0.05 / 0.9975, rel=1e-6)
        assert overall["MAPE"].iloc[0] == pytest.approx(0.0501253133, rel=1e-7)
        assert overall["MAE"].iloc[0] == pytest.approx(0.05 * exact.mean(), rel=1e-6)
        assert overall["n"].iloc[0] == 400

    def test_absolute_noise_reference_mae(self, modeling_frame):
        train, test = self.split(modeling_frame)
        results = fit_ols(train, config.MODEL_FEATURES)

        exact = test[config.PRICE_COL].copy()
        test[config.PRICE_COL] = exact + 10_000 * alternate(test)

        errors = prediction_errors(results, test, config.MODEL_FEATURES)
        overall = error_summary(errors)

        assert overall["MAE"].iloc[0] == pytest.approx(10_000.0, rel=1e-6)
        # Model sits below the raised prices and above the lowered ones
        np.testing.assert_allclose(errors["error"], -10_000 * alternate(test).loc[errors.index],
                                   rtol=1e-6)
        expected_mape = (10_000 / test[config.PRICE_COL]).mean()
        assert overall["MAPE"].iloc[0] == pytest.approx(expected_mape, rel=1e-6)

    def test_fit_is_deterministic(self, modeling_frame):
        train, _ = stratified_split(modeling_frame)
        a = fit_ols(train).params
        b = fit_ols(stratified_split(modeling_frame)[0]).params

        pd.testing.assert_series_equal(a, b)


class TestModel:
    """Tests for fit_ols, predict and coefficient_table."""

    def test_missing_feature_value_raises(self, modeling_frame):
        df = modeling_frame.copy()
        df.loc[5, "crime_nn3"] = np.nan

        with pytest.raises(Exception):
            fit_ols(df)

    def test_predict_aligns_on_index(self, modeling_frame):
        results = fit_ols(modeling_frame)
        subset = modeling_frame.iloc[[10, 3, 7]]

        pred = predict(results, subset)

        assert pred.index.tolist() == [10, 3, 7]
        np.testing.assert_allclose(pred, subset[config.PRICE_COL], rtol=1e-6)

    def test_coefficient_table_columns(self, modeling_frame):
        table = coefficient_table(fit_ols(modeling_frame))

        assert list(table.columns) == ["Coefficient", "Std. Error", "CI Lower",
                                       "CI Upper", "p-value"]
        assert list(table.index) == ["const"] + config.MODEL_FEATURES


class TestPredictionErrors:
    """Tests for prediction_errors and error_summary."""

    def setup_method(self):
        self.df = pd.DataFrame({
            "x": [1.0, 2.0, 3.0, 4.0],
            "sale_price": [100.0, 200.0, 300.0, 400.0],
            "neighborhood": ["A", "A", "B", "B"],
        })
        self.results = fit_ols(self.df, ["x"])

    def test_columns_and_signs(self):
        df = self.df.copy()
        df["sale_price"] = [110.0, 190.0, 300.0, 400.0]

        errors = prediction_errors(self.results, df, ["x"])

        assert errors["predicted"].tolist() == pytest.approx([100, 200, 300, 400])
        assert errors["error"].tolist() == pytest.approx([-10, 10, 0, 0])
        assert errors["abs_error"].tolist() == pytest.approx([10, 10, 0, 0])
        assert errors["ape"].tolist() == pytest.approx([10 / 110, 10 / 190, 0, 0])

    def test_grouped_summary(self):
        df = self.df.copy()
        df["sale_price"] = [110.0, 190.0, 300.0, 400.0]
        errors = prediction_errors(self.results, df, ["x"])

        by_hood = error_summary(errors, by="neighborhood")

        assert by_hood.loc["A", "MAE"] == pytest.approx(10.0)
        assert by_hood.loc["B", "MAE"] == pytest.approx(0.0)
        assert by_hood.loc["A", "n"] == 2
        # Worst MAPE first
        assert by_hood.index[0] == "A"


class TestIncomeContext:
    """Tests for income_context."""

    def test_threshold_is_low(self):
        out = income_context([77_453, 77_454, 77_455])

        assert out.tolist() == ["Low", "Low", "High"]

    def test_missing_income_is_low(self):
        assert income_context([np.nan, 0]).tolist() == ["Low", "Low"]

    def test_custom_threshold(self):
        assert income_context([10, 20], threshold=15).tolist() == ["Low", "High"]


class TestCrossValidate:
    """Tests for cross_validate."""

    def setup_method(self):
        rng = np.random.default_rng(0)
        n = 200
        self.df = pd.DataFrame({"x": rng.uniform(0, 10, n)})
        self.df["sale_price"] = 1000 + 50 * self.df["x"] + rng.normal(0, 5, n)

    def test_one_row_per_fold(self):
        folds = cross_validate(self.df, ["x"], n_folds=10)

        assert len(folds) == 10
        assert folds["n"].sum() == 200
        assert (folds["MAE"] > 0).all()

    def test_reproducible(self):
        a = cross_validate(self.df, ["x"], n_folds=20, random_state=5)
        b = cross_validate(self.df, ["x"], n_folds=20, random_state=5)

        pd.testing.assert_frame_equal(a, b)

    def test_hundred_folds(self):
        folds = cross_validate(self.df, ["x"], n_folds=100)

        assert len(folds) == 100
        assert folds["n"].tolist() == [2] * 100

    def test_too_few_records_raises(self):
        with pytest.raises(ValueError):
            cross_validate(self.df.head(50), ["x"], n_folds=100)


class TestMoransI:
    """Tests for morans_i."""

    def grid(self, values):
        coords = [(x * 100.0, y * 100.0) for y in range(20) for x in range(20)]
        return points(coords, abs_error=values)

    def test_rank_in_range(self):
        rng = np.random.default_rng(4)
        result = morans_i(self.grid(rng.normal(size=400)))

        assert 1 <= result.rank <= 1000
        assert result.permutations == 999
        assert 0 < result.p_value <= 1

    def test_clustered_residuals_in_upper_tail(self):
        # Left half of the grid carries large errors, right half small ones
        values = [100.0 if x < 10 else 1.0 for y in range(20) for x in range(20)]

        result = morans_i(self.grid(values))

        assert result.I > 0.5
        assert result.rank >= 990
        assert result.p_value < 0.01

    def test_reproducible_with_seed(self):
        rng = np.random.default_rng(9)
        grid = self.grid(rng.normal(size=400))

        a = morans_i(grid, permutations=99, random_state=1)
        b = morans_i(grid, permutations=99, random_state=1)

        np.testing.assert_array_equal(a.sims, b.sims)
        assert a.rank == b.rank
