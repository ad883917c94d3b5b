"""
Tables, figures, maps and the final prediction export.

Figures go to FIG_DIR as PNG, tables to TBL_DIR as LaTeX, data files to
DATA_DIR. Nothing here feeds back into the model.
"""

import logging

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import statsmodels.api as sm
from matplotlib.ticker import FuncFormatter

from phl_hedonic import config
from phl_hedonic.features import containment
from phl_hedonic.model import coefficient_table

logger = logging.getLogger(__name__)

# Formatter to display numbers with thousands separators
formatter = FuncFormatter(lambda x, _: f'{x:,.0f}')


def latex_escape(text: str) -> str:
    """Escape underscores so LaTeX does not treat them as math subscripts."""
    return text.replace('_', r'\_')


def _pretty(var):
    return config.PRETTY_NAME.get(var, var)


def _save(fig, name, fig_dir):
    fig_dir.mkdir(parents=True, exist_ok=True)
    path = fig_dir / f"{name}.png"
    fig.tight_layout()
    fig.savefig(path, dpi=300)
    plt.close(fig)
    logger.info('Figure "%s" is Created', path.name)
    return path


def _write_latex(table, path, **kwargs):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(table.to_latex(**kwargs), encoding="utf-8")
    logger.info('Table "%s" is Created', path.name)
    return path


# ---------------------------------------------------------------------------
#  Descriptive tables
# ---------------------------------------------------------------------------
def summary_table(records, columns=config.DESCRIBE_COLS, tbl_dir=config.TBL_DIR):
    """Mean, sd, min, median and max of the described columns."""
    columns = [c for c in columns if c in records.columns]
    summary = records[columns].describe().T.loc[:, ['mean', 'std', 'min', '50%', 'max']]
    summary = summary.round(2)
    summary.index = [_pretty(c) for c in summary.index]

    _write_latex(summary, tbl_dir / "summary_statistics_table.tex",
                 escape=True, float_format="%.2f",
                 caption="Summary Statistics", label="tab:summary_stats")
    return summary


def correlation_tables(records, columns=config.DESCRIBE_COLS, threshold=0.5,
                       fig_dir=config.FIG_DIR, tbl_dir=config.TBL_DIR):
    """
    Correlation heatmap plus a table of variable pairs whose absolute
    correlation exceeds `threshold`.
    """
    columns = [c for c in columns if c in records.columns]
    corr_matrix = records[columns].corr()

    fig, ax = plt.subplots(figsize=(11, 9))
    im = ax.imshow(corr_matrix.to_numpy(), cmap="RdBu_r", vmin=-1, vmax=1)
    ax.set_xticks(range(len(columns)))
    ax.set_xticklabels([_pretty(c) for c in columns], rotation=90, fontsize=7)
    ax.set_yticks(range(len(columns)))
    ax.set_yticklabels([_pretty(c) for c in columns], fontsize=7)
    fig.colorbar(im, ax=ax, shrink=0.8, label="Pearson r")
    _save(fig, "correlation_matrix", fig_dir)

    # Only upper triangle (no repeats)
    mask = np.triu(np.ones(corr_matrix.shape), k=1).astype(bool)
    high_corr = (
        corr_matrix.where(mask).stack()
        .reset_index()
        .rename(columns={"level_0": "Variable 1", "level_1": "Variable 2", 0: "Correlation"})
    )
    high_corr = high_corr[high_corr["Correlation"].abs() > threshold]
    high_corr = high_corr.reindex(
        high_corr["Correlation"].abs().sort_values(ascending=False).index)
    high_corr["Correlation"] = high_corr["Correlation"].round(2)

    _write_latex(high_corr, tbl_dir / "high_corr_table.tex",
                 escape=True, index=False, float_format="%.2f",
                 caption="Pairs of Variables with High Correlation", label="tab:high_corr")
    return corr_matrix, high_corr


def price_scatterplots(records, features=config.MODEL_FEATURES, target=config.PRICE_COL,
                       fig_dir=config.FIG_DIR):
    """Sale price against each model feature, with a least-squares line."""
    n = len(features)
    ncols = min(n, 3)
    nrows = int(np.ceil(n / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4.5 * ncols, 4 * nrows), squeeze=False)

    for ax, var in zip(axes.ravel(), features):
        x = records[var].astype(float)
        y = records[target].astype(float)
        ax.scatter(x, y, s=6, alpha=.25, color="grey")
        ok = np.isfinite(x) & np.isfinite(y)
        if ok.sum() > 1 and x[ok].nunique() > 1:
            slope, intercept = np.polyfit(x[ok], y[ok], 1)
            xs = np.linspace(x[ok].min(), x[ok].max(), 100)
            ax.plot(xs, intercept + slope * xs, color="royalblue", lw=2)
        ax.set_xlabel(_pretty(var))
        ax.set_ylabel(_pretty(target))
        ax.yaxis.set_major_formatter(formatter)
    for ax in axes.ravel()[n:]:
        ax.set_visible(False)

    return _save(fig, "price_scatterplots", fig_dir)


# ---------------------------------------------------------------------------
#  Maps
# ---------------------------------------------------------------------------
def price_map(records, neighborhoods, target=config.PRICE_COL, fig_dir=config.FIG_DIR):
    """Sale prices as points over the neighborhood outlines."""
    fig, ax = plt.subplots(figsize=(8, 8))
    neighborhoods.boundary.plot(ax=ax, color="lightgrey", linewidth=0.5)
    records.plot(ax=ax, column=target, cmap="viridis", markersize=3, legend=True,
                 legend_kwds={"label": _pretty(target), "shrink": 0.6})
    ax.set_axis_off()
    ax.set_title("Sale Price")
    return _save(fig, "sale_price_map", fig_dir)


def mape_choropleth(by_hood, neighborhoods, name_col=config.NEIGHBORHOOD_NAME_COL,
                    fig_dir=config.FIG_DIR):
    """Neighborhood polygons shaded by test-set MAPE; hoods without test sales stay grey."""
    shaded = neighborhoods.merge(by_hood[["MAPE"]], left_on=name_col,
                                 right_index=True, how="left")
    fig, ax = plt.subplots(figsize=(8, 8))
    shaded.plot(ax=ax, column="MAPE", cmap="magma_r", legend=True, edgecolor="white",
                linewidth=0.3, missing_kwds={"color": "lightgrey"},
                legend_kwds={"label": "MAPE", "shrink": 0.6})
    ax.set_axis_off()
    ax.set_title("Test-set MAPE by Neighborhood")
    return _save(fig, "mape_by_neighborhood", fig_dir)


def error_map(errors, neighborhoods, fig_dir=config.FIG_DIR):
    """Absolute test-set errors as points."""
    fig, ax = plt.subplots(figsize=(8, 8))
    neighborhoods.boundary.plot(ax=ax, color="lightgrey", linewidth=0.5)
    errors.plot(ax=ax, column="abs_error", cmap="Reds", markersize=4, legend=True,
                legend_kwds={"label": "Absolute Error", "shrink": 0.6})
    ax.set_axis_off()
    ax.set_title("Absolute Error, Test Set")
    return _save(fig, "abs_error_map", fig_dir)


# ---------------------------------------------------------------------------
#  Model tables and diagnostics
# ---------------------------------------------------------------------------
def export_coef_table_to_latex(results, filename, caption, label):
    """Coefficient table (coef, SE, 95 % CI, p) with pretty labels."""
    coef_tbl = coefficient_table(results)
    coef_tbl.index = [latex_escape(_pretty(var)) for var in coef_tbl.index]
    coef_tbl = coef_tbl.round(4).sort_values('Coefficient', ascending=False)

    _write_latex(coef_tbl, filename, index=True, escape=True, float_format="%.4f",
                 column_format="lrrrrr", caption=caption, label=label)
    return coef_tbl


def residual_qqplot(results, fig_dir=config.FIG_DIR):
    fig = sm.qqplot(results.resid, line="45", fit=True)
    fig.set_size_inches(5, 5)
    return _save(fig, "qqplot_residuals", fig_dir)


def error_table(summary, name, caption, tbl_dir=config.TBL_DIR):
    """MAE/MAPE table for one grouping."""
    table = summary.copy()
    table.index = [str(i) for i in table.index]
    return _write_latex(table, tbl_dir / f"errors_{name}.tex", escape=True,
                        float_format="%.4f", caption=caption, label=f"tab:errors_{name}")


def cv_histogram(folds, fig_dir=config.FIG_DIR):
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.hist(folds["MAE"], bins=30, edgecolor="black", color="royalblue")
    ax.set_xlabel("Fold MAE")
    ax.set_ylabel("Number of Folds")
    ax.xaxis.set_major_formatter(formatter)
    ax.set_title(f"Cross-validation MAE ({len(folds)} folds)")
    return _save(fig, "cv_mae_distribution", fig_dir)


def moran_histogram(moran, fig_dir=config.FIG_DIR):
    """Permutation distribution of Moran's I with the observed value marked."""
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.hist(moran.sims, bins=50, color="grey", edgecolor="white")
    ax.axvline(moran.I, color="orangered", lw=2, label=f"Observed I = {moran.I:.3f}")
    ax.set_xlabel("Moran's I")
    ax.set_ylabel("Count")
    ax.legend()
    ax.set_title(f"{moran.permutations} permutations, p = {moran.p_value:.3f}")
    return _save(fig, "morans_i_permutations", fig_dir)


# ---------------------------------------------------------------------------
#  Exports
# ---------------------------------------------------------------------------
def zone_prices(layer, records, attribute, target=config.PRICE_COL):
    """Copy of a boundary layer with the sale count and median price of each zone."""
    zone = containment(records, layer, attribute, fill_value=np.nan)
    stats = records[target].groupby(zone).agg(["size", "median"])

    out = layer.copy()
    out["n_sales"] = out[attribute].map(stats["size"]).fillna(0).astype(int)
    out["median_price"] = out[attribute].map(stats["median"])
    return out


def export_boundaries(layer, path):
    """Write an intermediate boundary layer (e.g. tracts with ACS data) as GeoJSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    layer.to_crs(config.SOURCE_CRS).to_file(path, driver="GeoJSON")
    logger.info("Boundary layer written to %s", path)
    return path


def export_predictions(records, predicted, path, id_col=config.ID_COL):
    """Two-column CSV: record identifier and predicted price."""
    out = pd.DataFrame({
        id_col:  records[id_col].to_numpy(),
        "price": np.asarray(predicted, dtype=float),
    })
    path.parent.mkdir(parents=True, exist_ok=True)
    out.to_csv(path, index=False)
    logger.info("%d predictions written to %s", len(out), path)
    return path
