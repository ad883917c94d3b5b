"""
End-to-end run: load → features → split → fit → evaluate → report.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from phl_hedonic import acquisition, config, reporting
from phl_hedonic.evaluation import (cross_validate, error_summary, income_context,
                                    morans_i, prediction_errors)
from phl_hedonic.features import FeatureKind, FeatureSpec, add_age, attach_features
from phl_hedonic.model import fit_ols, predict
from phl_hedonic.partition import challenge_set, fill_missing, modeling_set, stratified_split

logger = logging.getLogger(__name__)


FEATURE_SPECS = [
    FeatureSpec("crime_buffer", FeatureKind.RADIUS_COUNT, "crime",
                {"radius": config.CRIME_BUFFER_FT}),
    *[FeatureSpec(f"crime_nn{k}", FeatureKind.KNN_DISTANCE, "crime", {"k": k},
                  fill_value=np.nan)
      for k in config.KNN_SET],
    FeatureSpec("parks_buffer", FeatureKind.RADIUS_COUNT, "parks",
                {"radius": config.PARK_BUFFER_FT}),
    FeatureSpec("neighborhood", FeatureKind.CONTAINMENT, "neighborhoods",
                {"attribute": config.NEIGHBORHOOD_NAME_COL}, fill_value="Unknown"),
    FeatureSpec("school_catchment", FeatureKind.CONTAINMENT, "school_catchments",
                {"attribute": config.CATCHMENT_ID_COL}, fill_value="Unknown"),
    FeatureSpec("tract", FeatureKind.CONTAINMENT, "tracts",
                {"attribute": "GEOID"}, fill_value="Unknown"),
    *[FeatureSpec(col, FeatureKind.CONTAINMENT, "tracts", {"attribute": col})
      for col in ("med_hh_income", "pct_white", "pct_bachelors", "pct_poverty")],
    FeatureSpec("food_access_ratio", FeatureKind.RATIO, "food_retail",
                {"numerator": config.RETAIL_HIGH_COL,
                 "denominator": config.RETAIL_LOW_COL}, fill_value=0.0),
    FeatureSpec("price_lag", FeatureKind.SPATIAL_LAG, None,
                {"value": config.PRICE_COL, "k": config.LAG_K}, fill_value=np.nan),
]


@dataclass
class PipelineResult:
    records: pd.DataFrame
    train: pd.DataFrame
    test: pd.DataFrame
    model: object
    errors: pd.DataFrame
    overall: pd.DataFrame
    by_neighborhood: pd.DataFrame
    by_income: pd.DataFrame
    folds: pd.DataFrame
    moran: object
    predictions_path: object


def load_inputs():
    """Every layer the features need, keyed by the names FEATURE_SPECS use."""
    return {
        "parcels":           acquisition.load_parcels(),
        "crime":             acquisition.load_crime(),
        "parks":             acquisition.load_parks(),
        "neighborhoods":     acquisition.load_neighborhoods(),
        "school_catchments": acquisition.load_school_catchments(),
        "tracts":            acquisition.load_tracts(),
        "food_retail":       acquisition.load_food_retail(),
        "zip_codes":         acquisition.load_zip_codes(),
    }


def run(inputs=None, specs=FEATURE_SPECS, features=config.MODEL_FEATURES,
        data_dir=config.DATA_DIR, fig_dir=config.FIG_DIR, tbl_dir=config.TBL_DIR,
        n_folds=config.N_FOLDS, permutations=config.PERMUTATIONS,
        random_state=config.RANDOM_STATE):
    for directory in (data_dir, fig_dir, tbl_dir):
        directory.mkdir(parents=True, exist_ok=True)

    if inputs is None:
        inputs = load_inputs()
    layers = {k: v for k, v in inputs.items() if k != "parcels"}

    # ---------------------------------------------------------------- features
    records = add_age(inputs["parcels"], reference_year=config.AGE_REFERENCE_YEAR)
    records = attach_features(records, specs, layers)
    records["income_context"] = income_context(records["med_hh_income"]).to_numpy()
    logger.info("Feature engineering is Completed")

    # ------------------------------------------------------------ split & fit
    modeling = modeling_set(records, features)
    train, test = stratified_split(modeling, random_state=random_state)
    results = fit_ols(train, features)

    # --------------------------------------------------------------- evaluate
    errors = prediction_errors(results, test, features)
    overall = error_summary(errors)
    by_hood = error_summary(errors, by="neighborhood")
    by_income = error_summary(errors, by="income_context")
    logger.info("Test MAE=%.2f, MAPE=%.4f", overall["MAE"].iloc[0], overall["MAPE"].iloc[0])

    folds = cross_validate(modeling, features, n_folds=n_folds, random_state=random_state)
    moran = morans_i(errors, "abs_error", permutations=permutations,
                     random_state=random_state)

    # ----------------------------------------------------------------- report
    reporting.summary_table(modeling, tbl_dir=tbl_dir)
    reporting.correlation_tables(modeling, fig_dir=fig_dir, tbl_dir=tbl_dir)
    reporting.price_scatterplots(modeling, features, fig_dir=fig_dir)
    reporting.export_coef_table_to_latex(
        results, tbl_dir / "coef_table.tex",
        caption="Least-Squares Estimates with 95 percent CI", label="tab:ols_coeffs")
    reporting.residual_qqplot(results, fig_dir=fig_dir)
    reporting.error_table(overall, "overall", "Test-set Errors", tbl_dir=tbl_dir)
    reporting.error_table(by_hood, "neighborhood", "Test-set Errors by Neighborhood",
                          tbl_dir=tbl_dir)
    reporting.error_table(by_income, "income_context", "Test-set Errors by Income Context",
                          tbl_dir=tbl_dir)
    reporting.cv_histogram(folds, fig_dir=fig_dir)
    reporting.moran_histogram(moran, fig_dir=fig_dir)

    if "neighborhoods" in layers:
        reporting.price_map(modeling, layers["neighborhoods"], fig_dir=fig_dir)
        reporting.mape_choropleth(by_hood, layers["neighborhoods"], fig_dir=fig_dir)
        reporting.error_map(errors, layers["neighborhoods"], fig_dir=fig_dir)
    if "tracts" in layers:
        reporting.export_boundaries(layers["tracts"], data_dir / "tracts.geojson")
    if "zip_codes" in layers:
        zips = reporting.zone_prices(layers["zip_codes"], modeling, config.ZIP_CODE_COL)
        reporting.export_boundaries(zips, data_dir / "zip_codes.geojson")

    challenge = fill_missing(challenge_set(records), train, features)
    predictions_path = reporting.export_predictions(
        challenge, predict(results, challenge, features),
        data_dir / "challenge_predictions.csv")

    logger.info("Pipeline is Completed")
    return PipelineResult(records=records, train=train, test=test, model=results,
                          errors=errors, overall=overall, by_neighborhood=by_hood,
                          by_income=by_income, folds=folds, moran=moran,
                          predictions_path=predictions_path)
