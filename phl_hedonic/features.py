"""
Spatial features attached to parcel records.

Every function returns a Series aligned on the parcel index; parcels with no
spatial match receive an explicit fill value instead of being dropped.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

import geopandas as gpd
import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)


def xy_coords(gdf):
    """(N, 2) planar coordinates; non-point geometries use their centroid."""
    geom = gdf.geometry
    if not (geom.geom_type == "Point").all():
        geom = geom.centroid
    return np.column_stack([geom.x.to_numpy(), geom.y.to_numpy()])


def radius_count(records, events, radius):
    """Number of events within `radius` of each parcel (boundary inclusive)."""
    if events is None or events.empty:
        return pd.Series(0, index=records.index, dtype="int64")
    tree = cKDTree(xy_coords(events))
    counts = tree.query_ball_point(xy_coords(records), r=radius, return_length=True)
    return pd.Series(np.asarray(counts, dtype="int64"), index=records.index)


def knn_distance(records, events, k, fill_value=np.nan):
    """
    Mean distance to the `k` nearest events. Fewer than `k` events means all
    of them are averaged; an empty layer gives `fill_value`.
    """
    if events is None or events.empty:
        return pd.Series(fill_value, index=records.index, dtype="float64")
    k = min(int(k), len(events))
    tree = cKDTree(xy_coords(events))
    dist, _ = tree.query(xy_coords(records), k=list(range(1, k + 1)))
    return pd.Series(dist.mean(axis=1), index=records.index)


def containment(records, polygons, attribute, fill_value=0):
    """
    Attribute of the polygon that contains each parcel.

    A parcel on a boundary counts as inside every polygon it touches. A
    parcel in several polygons takes the one with the lowest layer index;
    a parcel in none gets `fill_value`.
    """
    if attribute not in polygons.columns:
        raise ValueError(f"Layer has no attribute {attribute!r}")

    right = polygons[[attribute, polygons.geometry.name]].copy()
    right["_poly"] = np.arange(len(right))
    joined = gpd.sjoin(records[[records.geometry.name]], right,
                       how="left", predicate="intersects")

    joined = joined.sort_values("_poly", kind="stable", na_position="last")
    n_multi = int(joined.index.duplicated().sum())
    if n_multi:
        logger.warning("%d extra polygon matches for %s; keeping the first",
                       n_multi, attribute)
    joined = joined[~joined.index.duplicated(keep="first")]
    values = joined[attribute].reindex(records.index)

    unmatched = int(values.isna().sum())
    if unmatched:
        logger.info("%d of %d parcels not inside any polygon for %s; filled with %r",
                    unmatched, len(records), attribute, fill_value)
    return values.fillna(fill_value)


def ratio(numerator, denominator, fill_value=0.0):
    """Element-wise ratio; a missing, zero or negative operand yields `fill_value`."""
    num = pd.to_numeric(numerator, errors="coerce").astype(float)
    den = pd.to_numeric(denominator, errors="coerce").astype(float)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = num / den
    ok = (den > 0) & (num >= 0) & np.isfinite(out)
    return out.where(ok, fill_value)


def spatial_lag(records, value, k=5, fill_value=np.nan):
    """
    Uniform-weight mean of `value` over the `k` nearest parcels that carry a
    positive, finite value. A parcel is never its own neighbour. With fewer
    than two such parcels every record gets `fill_value`.
    """
    vals = pd.to_numeric(records[value], errors="coerce").to_numpy(float)
    ref = np.flatnonzero(np.isfinite(vals) & (vals > 0))

    n_query = min(k + 1, len(ref))
    if n_query < 2:
        logger.warning("Only %d parcels with a positive %s; lag filled with %r",
                       len(ref), value, fill_value)
        return pd.Series(fill_value, index=records.index, dtype="float64")

    xy = xy_coords(records)
    tree = cKDTree(xy[ref])
    _, nbr = tree.query(xy, k=list(range(1, n_query + 1)))
    nbr_pos = ref[nbr]                                   # positions in `records`

    # Drop self where present, otherwise the farthest extra neighbour
    keep = nbr_pos != np.arange(len(records))[:, None]
    keep[keep.all(axis=1), -1] = False
    nbr_pos = nbr_pos[keep].reshape(len(records), n_query - 1)

    return pd.Series(vals[nbr_pos].mean(axis=1), index=records.index)


def add_age(records, year_col="year_built", reference_year=2023, new_col="age"):
    """Add building age; unknown or non-positive build years give NaN."""
    records = records.copy()
    year = pd.to_numeric(records[year_col], errors="coerce")
    records[new_col] = (reference_year - year).where(year > 0)
    return records


class FeatureKind(Enum):
    RADIUS_COUNT = "radius_count"
    KNN_DISTANCE = "knn_distance"
    CONTAINMENT  = "containment"
    RATIO        = "ratio"
    SPATIAL_LAG  = "spatial_lag"


@dataclass(frozen=True, eq=False)
class FeatureSpec:
    """
    One derived column: `kind` picks the computation, `layer` names the
    geographic layer it reads (None for the spatial lag), `params` holds the
    kind-specific settings and `fill_value` what unmatched parcels receive.
    Radius counts ignore `fill_value`: no event in range is a count of 0.

        radius_count  params: radius
        knn_distance  params: k
        containment   params: attribute
        ratio         params: numerator, denominator (polygon attributes)
        spatial_lag   params: value, k
    """
    name: str
    kind: FeatureKind
    layer: str = None
    params: dict = field(default_factory=dict)
    fill_value: object = 0

    def apply(self, records, layer=None):
        if self.kind is FeatureKind.SPATIAL_LAG:
            return spatial_lag(records, self.params["value"], k=self.params.get("k", 5),
                               fill_value=self.fill_value)

        if layer is None:
            raise ValueError(f"Feature {self.name!r} needs layer {self.layer!r}")

        if self.kind is FeatureKind.RADIUS_COUNT:
            return radius_count(records, layer, self.params["radius"])
        if self.kind is FeatureKind.KNN_DISTANCE:
            return knn_distance(records, layer, self.params["k"], fill_value=self.fill_value)
        if self.kind is FeatureKind.CONTAINMENT:
            return containment(records, layer, self.params["attribute"],
                               fill_value=self.fill_value)
        if self.kind is FeatureKind.RATIO:
            num = containment(records, layer, self.params["numerator"], fill_value=np.nan)
            den = containment(records, layer, self.params["denominator"], fill_value=np.nan)
            return ratio(num, den, fill_value=self.fill_value)

        raise ValueError(f"Unknown feature kind {self.kind!r}")


def attach_features(records, specs, layers):
    """
    Apply `specs` in order to a copy of `records` and return it. Later specs
    can read columns produced by earlier ones.
    """
    out = records.copy()
    for spec in specs:
        layer = layers.get(spec.layer) if spec.layer else None
        if spec.layer and layer is None:
            raise ValueError(f"Layer {spec.layer!r} required by {spec.name!r} was not loaded")
        out[spec.name] = spec.apply(out, layer).to_numpy()
        logger.info("Attached feature %s (%s)", spec.name, spec.kind.value)
    return out
