"""
Load the parcel sales and every geographic layer into the planar CRS.

Each loader is a one-shot blocking read: a missing file, a failed request or
a malformed table raises and the run stops there.
"""

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
import requests

from phl_hedonic import config

logger = logging.getLogger(__name__)


def read_layer(source, crs=config.PLANAR_CRS, lowercase=True):
    """
    Read a vector layer (local path or URL) and project it to `crs`.

    Attribute names are lower-cased unless `lowercase` is False; rows with
    missing or empty geometries are dropped.
    """
    layer = gpd.read_file(source)
    if layer.crs is None:
        raise ValueError(f"Layer {source} has no coordinate reference system.")
    if lowercase:
        layer = layer.rename(columns={
            c: c.lower() for c in layer.columns if c != layer.geometry.name})

    layer = layer[layer.geometry.notna() & ~layer.geometry.is_empty]
    if layer.empty:
        raise ValueError(f"Layer {source} has no features.")

    layer = layer.to_crs(crs).reset_index(drop=True)
    logger.info("Loaded %d features from %s", len(layer), source)
    return layer


def load_parcels(source=config.PARCELS_SOURCE, crs=config.PLANAR_CRS):
    """Housing sales as points, numeric columns coerced, one row per sale."""
    parcels = read_layer(source, crs=crs, lowercase=False)

    required = [config.ID_COL, config.LABEL_COL] + config.NUMERIC_COLS
    missing = [c for c in required if c not in parcels.columns]
    if missing:
        raise ValueError(f"Parcel data is missing columns: {missing}")

    for col in config.NUMERIC_COLS:
        parcels[col] = pd.to_numeric(parcels[col], errors="coerce")
    parcels[config.LABEL_COL] = parcels[config.LABEL_COL].astype(str).str.upper()

    # Polygons (e.g. footprints) are reduced to their centroid
    if not (parcels.geom_type == "Point").all():
        parcels["geometry"] = parcels.geometry.centroid

    if parcels[config.ID_COL].duplicated().any():
        raise ValueError(f"Duplicate {config.ID_COL} values in parcel data.")

    counts = parcels[config.LABEL_COL].value_counts().to_dict()
    logger.info("Parcels by label: %s", counts)
    return parcels


def load_neighborhoods(source=config.NEIGHBORHOODS_SOURCE):
    return read_layer(source)


def load_school_catchments(source=config.CATCHMENTS_SOURCE):
    return read_layer(source)


def load_parks(source=config.PARKS_SOURCE):
    return read_layer(source)


def load_food_retail(source=config.FOOD_RETAIL_SOURCE):
    return read_layer(source)


def load_zip_codes(source=config.ZIP_CODES_SOURCE):
    return read_layer(source)


def load_crime(year=config.CRIME_YEAR, offense_types=config.CRIME_TYPES,
               crs=config.PLANAR_CRS):
    """
    Pull one year of incidents of the given offense types from the city's
    Carto SQL API and return them as points.
    """
    types = ", ".join("'{}'".format(t.replace("'", "''")) for t in offense_types)
    query = (
        f"SELECT * FROM {config.CRIME_TABLE} "
        f"WHERE dispatch_date_time >= '{year}-01-01' "
        f"AND dispatch_date_time < '{year + 1}-01-01' "
        f"AND text_general_code IN ({types})"
    )
    resp = requests.get(config.CARTO_SQL_URL,
                        params={"q": query, "format": "GeoJSON"},
                        timeout=config.API_TIMEOUT)
    resp.raise_for_status()
    payload = resp.json()

    features = payload.get("features")
    if features is None:
        raise ValueError("Crime response is not a GeoJSON FeatureCollection.")

    crime = gpd.GeoDataFrame.from_features(features, crs=config.SOURCE_CRS)
    if crime.empty:
        raise ValueError(f"No crime incidents returned for {year}.")

    crime = crime[crime.geometry.notna() & ~crime.geometry.is_empty]
    crime = crime.to_crs(crs).reset_index(drop=True)
    logger.info("Loaded %d crime incidents for %d", len(crime), year)
    return crime


def fetch_acs(year=config.CENSUS_YEAR, api_key=config.CENSUS_API_KEY):
    """
    ACS 5-year tract table for Philadelphia County with the derived
    demographic shares used as features.
    """
    params = {
        "get": "NAME," + ",".join(config.ACS_VARIABLES),
        "for": "tract:*",
        "in": f"state:{config.STATE_FIPS} county:{config.COUNTY_FIPS}",
    }
    if api_key:
        params["key"] = api_key

    resp = requests.get(config.CENSUS_API_URL.format(year=year), params=params,
                        timeout=config.API_TIMEOUT)
    resp.raise_for_status()
    data = resp.json()

    # First row is the header
    if len(data) < 2:
        raise ValueError("Census API returned no rows.")
    acs = pd.DataFrame(data[1:], columns=data[0])

    missing = [k for k in config.ACS_VARIABLES if k not in acs.columns]
    if missing:
        raise ValueError(f"Census API response is missing {missing}")
    acs = acs.rename(columns=config.ACS_VARIABLES)

    for col in config.ACS_VARIABLES.values():
        acs[col] = pd.to_numeric(acs[col], errors="coerce")
    # Suppressed estimates come back as large negative sentinels
    acs["med_hh_income"] = acs["med_hh_income"].where(acs["med_hh_income"] >= 0)

    acs["GEOID"] = acs["state"] + acs["county"] + acs["tract"]
    pop = acs["total_pop"].to_numpy(float)
    for share, count in (("pct_white", "white_pop"),
                         ("pct_bachelors", "bachelors"),
                         ("pct_poverty", "poverty_pop")):
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = acs[count].to_numpy(float) / pop
        acs[share] = np.where(np.isfinite(ratio) & (pop > 0), ratio, 0.0)

    logger.info("Fetched ACS %d estimates for %d tracts", year, len(acs))
    return acs[["GEOID", "NAME", "total_pop", "med_hh_income",
                "pct_white", "pct_bachelors", "pct_poverty"]]


def load_tracts(year=config.CENSUS_YEAR, api_key=config.CENSUS_API_KEY,
                crs=config.PLANAR_CRS):
    """TIGER/Line tract polygons for Philadelphia joined to the ACS table."""
    url = config.TIGER_TRACT_URL.format(year=year, state=config.STATE_FIPS)
    tracts = gpd.read_file(url)
    tracts = tracts[tracts["COUNTYFP"] == config.COUNTY_FIPS]
    if tracts.empty:
        raise ValueError(f"No tracts for county {config.COUNTY_FIPS} in {url}")

    acs = fetch_acs(year=year, api_key=api_key)
    tracts = tracts[["GEOID", "geometry"]].merge(acs, on="GEOID", how="left")
    return tracts.to_crs(crs).reset_index(drop=True)
