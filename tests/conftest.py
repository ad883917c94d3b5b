"""Synthetic parcels and layers in the planar CRS; no network access."""

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point, box

from phl_hedonic import config

CRS = config.PLANAR_CRS


def points(coords, crs=CRS, **columns):
    """GeoDataFrame of points with extra columns."""
    return gpd.GeoDataFrame(
        dict(columns),
        geometry=[Point(x, y) for x, y in coords],
        crs=crs,
    )


def polygons(boxes, crs=CRS, **columns):
    return gpd.GeoDataFrame(
        dict(columns),
        geometry=[box(*b) for b in boxes],
        crs=crs,
    )


def exact_price(df):
    """Sale price as an exact linear function of the five model features."""
    return (50_000
            + 120.0 * df["total_livable_area"]
            + 8_000.0 * df["fireplaces"]
            - 15.0 * df["crime_nn3"]
            + 3_000.0 * df["parks_buffer"]
            + 0.5 * df["price_lag"])


@pytest.fixture
def modeling_frame():
    """1,000 modeling records with fixed feature values and an exact-fit price."""
    rng = np.random.default_rng(7)
    n = 1000
    df = pd.DataFrame({
        config.ID_COL: np.arange(n),
        config.LABEL_COL: config.MODEL_LABEL,
        "total_livable_area": rng.integers(600, 4000, n).astype(float),
        "fireplaces": rng.integers(0, 3, n).astype(float),
        "crime_nn3": rng.uniform(50, 2000, n),
        "parks_buffer": rng.integers(0, 8, n).astype(float),
        "price_lag": rng.uniform(80_000, 600_000, n),
        "interior_condition": rng.integers(1, 5, n),
        "exterior_condition": rng.integers(1, 5, n),
    })
    df[config.PRICE_COL] = exact_price(df)
    return df


@pytest.fixture
def city_inputs():
    """
    A 6,000 ft square city: 300 parcels (250 modeling, 50 challenge), crime
    points, park polygons, four neighborhoods/tracts, two catchments, two
    food-retail areas (one with no low-produce stores) and two ZIP codes.
    """
    rng = np.random.default_rng(11)
    n, n_model = 300, 250
    xy = rng.uniform(10, 5990, size=(n, 2))

    area = rng.integers(700, 3500, n).astype(float)
    fireplaces = rng.integers(0, 3, n).astype(float)
    price = 40_000 + 110 * area + 9_000 * fireplaces + rng.normal(0, 15_000, n)
    price[n_model:] = 0

    parcels = points(
        xy,
        **{
            config.ID_COL: np.arange(1, n + 1),
            config.PRICE_COL: price,
            config.LABEL_COL: [config.MODEL_LABEL] * n_model
                              + [config.CHALLENGE_LABEL] * (n - n_model),
            "total_livable_area": area,
            "year_built": rng.integers(1900, 2015, n).astype(float),
            "interior_condition": rng.integers(2, 5, n).astype(float),
            "exterior_condition": rng.integers(2, 5, n).astype(float),
            "fireplaces": fireplaces,
            "garage_spaces": rng.integers(0, 2, n).astype(float),
        },
    )

    crime = points(rng.uniform(0, 6000, size=(150, 2)))
    park_xy = rng.uniform(200, 5800, size=(20, 2))
    parks = polygons([(x - 50, y - 50, x + 50, y + 50) for x, y in park_xy])

    quads = [(0, 0, 3000, 3000), (3000, 0, 6000, 3000),
             (0, 3000, 3000, 6000), (3000, 3000, 6000, 6000)]
    neighborhoods = polygons(quads, name=["Fishtown", "Kensington", "Manayunk", "Roxborough"])
    tracts = polygons(
        quads,
        GEOID=["42101000100", "42101000200", "42101000300", "42101000400"],
        NAME=["Tract 1", "Tract 2", "Tract 3", "Tract 4"],
        total_pop=[4000, 3500, 0, 5200],
        med_hh_income=[45_000.0, 77_454.0, np.nan, 120_000.0],
        pct_white=[0.3, 0.5, 0.0, 0.8],
        pct_bachelors=[0.2, 0.35, 0.0, 0.6],
        pct_poverty=[0.3, 0.15, 0.0, 0.05],
    )
    halves = [(0, 0, 3000, 6000), (3000, 0, 6000, 6000)]
    catchments = polygons(halves, es_id=["E101", "E202"])
    food_retail = polygons(halves, total_hpss=[4, 3], total_lpss=[8, 0])
    zip_codes = polygons([(0, 0, 6000, 3000), (0, 3000, 6000, 6000)], code=[19125, 19128])

    return {
        "parcels": parcels,
        "crime": crime,
        "parks": parks,
        "neighborhoods": neighborhoods,
        "school_catchments": catchments,
        "tracts": tracts,
        "food_retail": food_retail,
        "zip_codes": zip_codes,
    }
