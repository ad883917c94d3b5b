"""
Error metrics, cross-validation and spatial autocorrelation of residuals.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from esda.moran import Moran
from libpysal.weights import KNN
from sklearn.model_selection import KFold

from phl_hedonic import config
from phl_hedonic.features import xy_coords
from phl_hedonic.model import fit_ols, predict

logger = logging.getLogger(__name__)


def prediction_errors(results, records, features=config.MODEL_FEATURES,
                      target=config.PRICE_COL):
    """
    Copy of `records` with predicted price, signed error (predicted minus
    actual), absolute error and absolute percentage error.
    """
    out = records.copy()
    actual = out[target].astype(float)
    out["predicted"] = predict(results, out, features)
    out["error"] = out["predicted"] - actual
    out["abs_error"] = out["error"].abs()
    out["ape"] = out["abs_error"] / actual
    return out


def error_summary(errors, by=None):
    """MAE and MAPE overall (one row) or per group of `by`."""
    if by is None:
        return pd.DataFrame({
            "MAE":  [errors["abs_error"].mean()],
            "MAPE": [errors["ape"].mean()],
            "n":    [len(errors)],
        })
    grouped = errors.groupby(by, observed=True)
    return pd.DataFrame({
        "MAE":  grouped["abs_error"].mean(),
        "MAPE": grouped["ape"].mean(),
        "n":    grouped.size(),
    }).sort_values("MAPE", ascending=False)


def income_context(income, threshold=config.INCOME_THRESHOLD):
    """"High" when income is strictly above `threshold`, else "Low" (missing included)."""
    income = pd.to_numeric(pd.Series(income), errors="coerce")
    return pd.Series(np.where(income > threshold, "High", "Low"), index=income.index)


def cross_validate(records, features=config.MODEL_FEATURES, target=config.PRICE_COL,
                   n_folds=config.N_FOLDS, random_state=config.RANDOM_STATE):
    """
    Shuffled k-fold refit of the fixed model. One row per fold with its
    MAE, MAPE and size; the spread shows how stable the model is.
    """
    if len(records) < n_folds:
        raise ValueError(f"{len(records)} records cannot fill {n_folds} folds")

    kf = KFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    rows = []
    for fold, (tr, te) in enumerate(kf.split(records)):
        train, test = records.iloc[tr], records.iloc[te]
        res = fit_ols(train, features, target)
        err = prediction_errors(res, test, features, target)
        rows.append({"fold": fold,
                     "MAE": err["abs_error"].mean(),
                     "MAPE": err["ape"].mean(),
                     "n": len(test)})

    folds = pd.DataFrame(rows)
    logger.info("%d-fold CV: mean MAE=%.2f, sd MAE=%.2f",
                n_folds, folds["MAE"].mean(), folds["MAE"].std())
    return folds


@dataclass
class MoranResult:
    I: float
    expected: float
    sims: np.ndarray
    rank: int         # position of I among sims plus itself, 1..permutations+1
    p_value: float    # share of sims at least as large as I (incl. observed)

    @property
    def permutations(self):
        return len(self.sims)


def morans_i(records, value="abs_error", k=config.MORAN_K,
             permutations=config.PERMUTATIONS, random_state=config.RANDOM_STATE):
    """
    Moran's I of `value` on a row-standardised k-nearest-neighbour graph,
    tested against `permutations` random relabellings.
    """
    y = records[value].to_numpy(float)
    w = KNN.from_array(xy_coords(records), k=k)
    w.transform = "R"

    np.random.seed(random_state)
    mi = Moran(y, w, permutations=permutations)

    sims = np.asarray(mi.sim, dtype=float)
    rank = int((sims < mi.I).sum()) + 1
    p_value = (int((sims >= mi.I).sum()) + 1) / (len(sims) + 1)
    logger.info("Moran's I of %s = %.4f (rank %d of %d, p=%.4f)",
                value, mi.I, rank, len(sims) + 1, p_value)
    return MoranResult(I=float(mi.I), expected=float(mi.EI), sims=sims,
                       rank=rank, p_value=p_value)
