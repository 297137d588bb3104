# -*- coding: utf-8 -*-
"""
Configuration Settings

Paths, data sources, column vocabularies and map styling shared by the
health board mapping pipeline.
"""

import os
from datetime import datetime

# Base directories
PROJECT_DIR = os.path.abspath(os.getenv("HEALTHMAPS_HOME", os.getcwd()))
DATA_DIR = os.path.join(PROJECT_DIR, "data")
RAW_DIR = os.path.join(DATA_DIR, "raw")
CACHE_DIR = os.path.join(DATA_DIR, "cache")
OUTPUT_DIR = os.path.join(PROJECT_DIR, "outputs")
MAPS_DIR = os.path.join(OUTPUT_DIR, "maps")
FIGURES_DIR = os.path.join(OUTPUT_DIR, "figures")
REPORT_DIR = os.path.join(OUTPUT_DIR, "reports")

# Default input files
BOUNDARIES_PATH = os.path.join(RAW_DIR, "SG_NHS_HealthBoards_2019.shp")
HEALTH_BOARD_LOOKUP_PATH = os.path.join(RAW_DIR, "health_boards.csv")
PRACTICES_PATH = os.path.join(RAW_DIR, "practices.csv")
POSTCODES_PATH = os.path.join(RAW_DIR, "postcodes.csv")
POPULATION_PATH = os.path.join(RAW_DIR, "population.csv")
AREA_LOOKUP_PATH = os.path.join(RAW_DIR, "datazone_lookup.csv")
PRESCRIBING_PATH = os.path.join(RAW_DIR, "prescribing.csv")
DISPENSERS_PATH = os.path.join(RAW_DIR, "dispensers.csv")
DISPENSING_PATH = os.path.join(RAW_DIR, "dispensing.csv")

# Optional open data downloads, used in place of the local file when set
SOURCE_URLS = {
    "practices": os.getenv("HEALTHMAPS_PRACTICES_URL", "").strip() or None,
    "postcodes": os.getenv("HEALTHMAPS_POSTCODES_URL", "").strip() or None,
    "population": os.getenv("HEALTHMAPS_POPULATION_URL", "").strip() or None,
    "prescribing": os.getenv("HEALTHMAPS_PRESCRIBING_URL", "").strip() or None,
    "dispensers": os.getenv("HEALTHMAPS_DISPENSERS_URL", "").strip() or None,
    "dispensing": os.getenv("HEALTHMAPS_DISPENSING_URL", "").strip() or None,
}
DOWNLOAD_TIMEOUT = int(os.getenv("HEALTHMAPS_DOWNLOAD_TIMEOUT", "120"))

# Coordinate reference systems
WGS84_CRS = "EPSG:4326"  # required by web maps
BNG_CRS = "EPSG:27700"   # British National Grid, used by the boundary files

# Upstream column names -> standard names
BOUNDARY_COLUMNS = {
    "HBCode": "hb_code",
    "HBName": "hb_name",
    "HB": "hb_code",
    "HB2019": "hb_code",
    "HB2019Name": "hb_name",
}

HEALTH_BOARD_COLUMNS = {
    "HB": "hb_code",
    "HBName": "hb_name",
    "HBCode": "hb_code",
}

PRACTICE_COLUMNS = {
    "PracticeCode": "practice_code",
    "GPPracticeName": "practice_name",
    "PracticeName": "practice_name",
    "Postcode": "postcode",
    "HB": "hb_code",
    "PracticeListSize": "list_size",
    "ListSize": "list_size",
}

POSTCODE_COLUMNS = {
    "Postcode": "postcode",
    "pcds": "postcode",
    "Latitude": "lat",
    "Longitude": "lon",
    "latitude": "lat",
    "longitude": "lon",
    "long": "lon",
}

POPULATION_COLUMNS = {
    "DataZone": "area_code",
    "DataZone2011": "area_code",
    "HB": "hb_code",
    "Sex": "sex",
    "Year": "year",
    "AllAges": "population",
}

AREA_LOOKUP_COLUMNS = {
    "DataZone": "area_code",
    "DataZone2011": "area_code",
    "HB": "hb_code",
}

PRESCRIBING_COLUMNS = {
    "HBT": "hb_code",
    "HBT2014": "hb_code",
    "GPPractice": "practice_code",
    "BNFItemDescription": "item_description",
    "NumberOfPaidItems": "paid_items",
    "PaidQuantity": "paid_quantity",
    "PaidDateMonth": "paid_month",
}

DISPENSER_COLUMNS = {
    "DispCode": "dispenser_code",
    "DispLocationName": "dispenser_name",
    "DispenserName": "dispenser_name",
    "DispLocationPostcode": "postcode",
    "Postcode": "postcode",
    "HB": "hb_code",
}

DISPENSING_COLUMNS = {
    "DispCode": "dispenser_code",
    "NumberOfPaidItems": "paid_items",
}

# Map configuration
MAP_CENTER = [57.0, -4.2]  # Scotland
DEFAULT_ZOOM = 6
DEFAULT_TILES = [
    ("cartodbpositron", "CartoDB Positron"),
    ("OpenStreetMap", "OpenStreetMap"),
    ("cartodbdark_matter", "CartoDB Dark Matter"),
]
DEFAULT_PALETTE = "YlOrRd_09"
DEFAULT_SCHEME = "linear"
DEFAULT_CLASSES = 5
MISSING_COLOR = "#d9d9d9"
SIMPLIFY_TOLERANCE = 0.001  # degrees, applied after reprojection

BOUNDARY_STYLE = {
    "fillColor": "#ffffff",
    "color": "#333333",
    "weight": 1,
    "fillOpacity": 0.0,
}

PRACTICE_STYLE = {
    "color": "#2b8cbe",
    "min_radius": 3,
    "max_radius": 18,
}

DISPENSER_STYLE = {
    "color": "green",
    "icon": "plus",
}

# Value columns the CLI can shade boards by
VALUE_COLUMNS = {
    "population": "Population",
    "list_size": "Registered patients",
    "practice_count": "GP practices",
    "paid_items": "Paid items",
    "items_per_1000": "Items per 1,000 patients",
}

# Static figures
VIZ_FIGSIZE = (10, 12)
DEFAULT_DPI = 200
STATIC_CMAP = "YlOrRd"

# Logging
LOGGER_NAME = "healthmaps"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = os.getenv("HEALTHMAPS_LOG_LEVEL", "INFO")


def get_timestamp():
    """Timestamp in the standard file name format."""
    return datetime.now().strftime('%Y%m%d_%H%M%S')


def get_output_filename(prefix, extension):
    """Build a timestamped file name."""
    return f"{prefix}_{get_timestamp()}.{extension}"


def ensure_directories(*directories):
    """Create the output directories (or the ones given) if missing."""
    targets = directories or (OUTPUT_DIR, MAPS_DIR, FIGURES_DIR, REPORT_DIR)
    for directory in targets:
        os.makedirs(directory, exist_ok=True)
    return list(targets)
