"""
Ordinary least squares on a fixed list of features.
"""

import logging

import pandas as pd
import statsmodels.api as sm

from phl_hedonic import config

logger = logging.getLogger(__name__)


def _design(records, features):
    X = records[features].astype(float)
    return sm.add_constant(X, has_constant="add")


def fit_ols(records, features=config.MODEL_FEATURES, target=config.PRICE_COL,
            cov_type="nonrobust"):
    """
    Fit `target ~ const + features`. Missing feature values raise instead of
    silently shrinking the sample.
    """
    y = records[target].astype(float)
    model = sm.OLS(y, _design(records, features), missing="raise")
    results = model.fit(cov_type=cov_type)
    logger.info("OLS on %d records: R2=%.4f, adj. R2=%.4f",
                int(results.nobs), results.rsquared, results.rsquared_adj)
    return results


def predict(results, records, features=config.MODEL_FEATURES):
    return pd.Series(results.predict(_design(records, features)),
                     index=records.index, name="predicted")


def coefficient_table(results):
    """Coefficient, standard error, 95 % CI and p-value per term."""
    ci = results.conf_int()
    ci.columns = ["CI Lower", "CI Upper"]
    table = pd.DataFrame({
        "Coefficient": results.params,
        "Std. Error":  results.bse,
    }).join(ci)
    table["p-value"] = results.pvalues
    return table
