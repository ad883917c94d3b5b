"""
Project paths, data sources and model settings for the Philadelphia
home-price pipeline. Every source can be pointed elsewhere through an
environment variable so the run works against local copies.
"""

import os
from pathlib import Path

ROOT_DIR = Path(os.environ.get("PHL_HEDONIC_ROOT", Path.cwd())).resolve()
DATA_DIR = ROOT_DIR / "Data"       # inputs, boundary exports, predictions
FIG_DIR  = ROOT_DIR / "Figures"    # all PNGs here
TBL_DIR  = ROOT_DIR / "Tables"     # all .tex tables here


def ensure_directories():
    """Create the output folders if they don't exist."""
    for directory in (DATA_DIR, FIG_DIR, TBL_DIR):
        directory.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
#  Sources (URL or local path)
# ---------------------------------------------------------------------------
PARCELS_SOURCE = os.environ.get(
    "PHL_PARCELS_SOURCE", str(DATA_DIR / "studentData.geojson"))
NEIGHBORHOODS_SOURCE = os.environ.get(
    "PHL_NEIGHBORHOODS_SOURCE",
    "https://raw.githubusercontent.com/azavea/geo-data/master/"
    "Neighborhoods_Philadelphia/Neighborhoods_Philadelphia.geojson")
CATCHMENTS_SOURCE = os.environ.get(
    "PHL_CATCHMENTS_SOURCE", str(DATA_DIR / "school_catchments.geojson"))
PARKS_SOURCE = os.environ.get(
    "PHL_PARKS_SOURCE", str(DATA_DIR / "ppr_properties.geojson"))
FOOD_RETAIL_SOURCE = os.environ.get(
    "PHL_FOOD_RETAIL_SOURCE", str(DATA_DIR / "neighborhood_food_retail.geojson"))
ZIP_CODES_SOURCE = os.environ.get(
    "PHL_ZIP_CODES_SOURCE", str(DATA_DIR / "zip_codes.geojson"))

CARTO_SQL_URL = "https://phl.carto.com/api/v2/sql"
CRIME_TABLE   = "incidents_part1_part2"
CRIME_YEAR    = int(os.environ.get("PHL_CRIME_YEAR", "2022"))
CRIME_TYPES   = (
    "Aggravated Assault Firearm",
    "Aggravated Assault No Firearm",
)

CENSUS_API_URL  = "https://api.census.gov/data/{year}/acs/acs5"
TIGER_TRACT_URL = "https://www2.census.gov/geo/tiger/TIGER{year}/TRACT/tl_{year}_{state}_tract.zip"
CENSUS_YEAR     = int(os.environ.get("PHL_CENSUS_YEAR", "2020"))
CENSUS_API_KEY  = os.environ.get("CENSUS_API_KEY", "")
STATE_FIPS      = "42"      # Pennsylvania
COUNTY_FIPS     = "101"     # Philadelphia

# ACS 5-year variables
ACS_VARIABLES = {
    "B01003_001E": "total_pop",
    "B19013_001E": "med_hh_income",
    "B02001_002E": "white_pop",
    "B15003_022E": "bachelors",
    "B17001_002E": "poverty_pop",
}

API_TIMEOUT = 60

# ---------------------------------------------------------------------------
#  Geometry
# ---------------------------------------------------------------------------
SOURCE_CRS = "EPSG:4326"
PLANAR_CRS = "EPSG:2272"    # NAD83 / Pennsylvania South (ftUS)

# ---------------------------------------------------------------------------
#  Parcel columns
# ---------------------------------------------------------------------------
ID_COL      = "musaID"
PRICE_COL   = "sale_price"
LABEL_COL   = "toPredict"
MODEL_LABEL = "MODELLING"
CHALLENGE_LABEL = "CHALLENGE"

NUMERIC_COLS = [
    "sale_price", "total_livable_area", "year_built", "interior_condition",
    "exterior_condition", "fireplaces", "garage_spaces",
]

NEIGHBORHOOD_NAME_COL = "name"
CATCHMENT_ID_COL      = "es_id"
RETAIL_HIGH_COL       = "total_hpss"    # high-produce supply stores
RETAIL_LOW_COL        = "total_lpss"    # low-produce supply stores
ZIP_CODE_COL          = "code"

# ---------------------------------------------------------------------------
#  Feature engineering
# ---------------------------------------------------------------------------
CRIME_BUFFER_FT = 660
PARK_BUFFER_FT  = 2640
KNN_SET         = (1, 2, 3, 4, 5)
LAG_K           = 5
AGE_REFERENCE_YEAR = 2023

# ---------------------------------------------------------------------------
#  Modeling
# ---------------------------------------------------------------------------
RANDOM_STATE   = 42
TEST_SIZE      = 0.40
STRATUM_COLS   = ["interior_condition", "exterior_condition"]
N_FOLDS        = 100
MORAN_K        = 5
PERMUTATIONS   = 999
INCOME_THRESHOLD = 77454

MODEL_FEATURES = [
    "total_livable_area",
    "fireplaces",
    "crime_nn3",
    "parks_buffer",
    "price_lag",
]

# Columns described in the summary and correlation tables
DESCRIBE_COLS = [
    "sale_price", "total_livable_area", "age", "fireplaces", "garage_spaces",
    "interior_condition", "exterior_condition", "crime_buffer", "crime_nn1",
    "crime_nn3", "crime_nn5", "parks_buffer", "food_access_ratio",
    "med_hh_income", "pct_white", "pct_bachelors", "pct_poverty", "price_lag",
]

PRETTY_NAME = {
    "const":              "Intercept",
    "sale_price":         "Sale Price",
    "total_livable_area": "Livable Area (sq. ft)",
    "age":                "Age of Property",
    "fireplaces":         "Fireplaces",
    "garage_spaces":      "Garage Spaces",
    "interior_condition": "Interior Condition",
    "exterior_condition": "Exterior Condition",
    "crime_buffer":       "Assaults within 1/8 mi",
    "crime_nn1":          "Dist. to Nearest Assault",
    "crime_nn3":          "Avg. Dist. to 3 Nearest Assaults",
    "crime_nn5":          "Avg. Dist. to 5 Nearest Assaults",
    "parks_buffer":       "Parks within 1/2 mi",
    "food_access_ratio":  "High/Low Produce Store Ratio",
    "med_hh_income":      "Median Household Income",
    "pct_white":          "Pct. White",
    "pct_bachelors":      "Pct. Bachelor's Degree",
    "pct_poverty":        "Pct. Below Poverty",
    "price_lag":          "Price Lag (5 nearest sales)",
}
