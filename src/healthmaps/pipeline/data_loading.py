# -*- coding: utf-8 -*-
"""
Data Loading Functions

This module contains functions for loading health board boundaries and the
open data tables (practices, postcodes, population, prescribing and
dispensing) into pandas/geopandas frames with standard column names.
"""

import os
import logging
from urllib.request import urlopen

import geopandas as gpd
import pandas as pd
from shapely import wkt
from shapely.geometry import Point

from .config import (
    AREA_LOOKUP_COLUMNS, BOUNDARY_COLUMNS, DISPENSER_COLUMNS, DISPENSING_COLUMNS,
    DOWNLOAD_TIMEOUT, HEALTH_BOARD_COLUMNS, POPULATION_COLUMNS, POSTCODE_COLUMNS,
    PRACTICE_COLUMNS, PRESCRIBING_COLUMNS, WGS84_CRS,
)
from .preprocessing import clean_codes, coerce_numeric, reproject, standardise_columns

logger = logging.getLogger(__name__)


def is_url(source):
    return str(source).lower().startswith(("http://", "https://"))


def download_file(url, dest_path, timeout=DOWNLOAD_TIMEOUT):
    """
    Download ``url`` to ``dest_path``.

    Returns:
        Path to the downloaded file
    """
    logger.info(f"Downloading {url}")
    with urlopen(url, timeout=timeout) as response:
        payload = response.read()

    directory = os.path.dirname(dest_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(dest_path, "wb") as f:
        f.write(payload)
    logger.info(f"Saved {len(payload)} bytes to {dest_path}")
    return dest_path


def read_table(source, cache_path=None, **kwargs):
    """
    Read a CSV table from a local path or a URL.

    Args:
        source: File path or http(s) URL
        cache_path: When ``source`` is a URL, download it here once and read
            the cached copy on later calls
        **kwargs: Passed to pandas.read_csv

    Returns:
        DataFrame
    """
    if is_url(source):
        if cache_path:
            if not os.path.exists(cache_path):
                download_file(source, cache_path)
            else:
                logger.info(f"Using cached copy of {source}: {cache_path}")
            source = cache_path
        else:
            logger.info(f"Reading {source}")
    elif not os.path.exists(source):
        raise FileNotFoundError(f"Data file not found: {source}")

    kwargs.setdefault("low_memory", False)
    df = pd.read_csv(source, **kwargs)
    logger.info(f"Loaded {len(df)} rows from {source}")
    return df


def _select_layer(file_path):
    layers = gpd.list_layers(file_path)
    names = list(layers["name"]) if len(layers) else []
    if not names:
        return None
    layer_name = next((name for name in names if "board" in name.lower()), names[0])
    logger.info(f"Layers in {file_path}: {names}; using {layer_name}")
    return layer_name


def load_boundaries(file_path, layer=None, crs=None, columns=None):
    """
    Load area boundaries from a file.

    Args:
        file_path: Path to .shp, .zip, .gpkg, .geojson/.json or .csv
        layer: GeoPackage layer; defaults to one with "board" in its name
        crs: Coordinate reference system to reproject to, or None to keep
            the file's CRS
        columns: Column map for standardisation (defaults to the boundary map)

    Returns:
        GeoDataFrame with hb_code/hb_name where the file provides them
    """
    if not is_url(file_path) and not os.path.exists(file_path):
        raise FileNotFoundError(f"Boundary file not found: {file_path}")

    ext = os.path.splitext(str(file_path))[1].lower()

    if ext == ".gpkg":
        layer = layer or _select_layer(file_path)
        gdf = gpd.read_file(file_path, layer=layer) if layer else gpd.read_file(file_path)
    elif ext in (".shp", ".zip", ".geojson", ".json"):
        gdf = gpd.read_file(file_path)
    elif ext == ".csv":
        df = pd.read_csv(file_path)
        if "geometry" in df.columns:
            try:
                df["geometry"] = df["geometry"].apply(wkt.loads)
            except Exception as exc:
                raise ValueError(f"Could not parse WKT geometry column in {file_path}") from exc
            gdf = gpd.GeoDataFrame(df, geometry="geometry", crs=WGS84_CRS)
        elif all(col in df.columns for col in ("lon", "lat")):
            geometry = [Point(xy) for xy in zip(df.lon, df.lat)]
            gdf = gpd.GeoDataFrame(df, geometry=geometry, crs=WGS84_CRS)
        else:
            raise ValueError("CSV file does not contain valid geometry information")
    else:
        raise ValueError(f"Unsupported file format: {ext}")

    gdf = standardise_columns(gdf, columns or BOUNDARY_COLUMNS)
    gdf = clean_codes(gdf, ["hb_code"])

    if crs is not None:
        gdf = reproject(gdf, crs)

    logger.info(f"Loaded {len(gdf)} boundaries from {file_path} (CRS: {gdf.crs})")
    return gdf


def load_practices(source, cache_path=None):
    """GP practices with list sizes."""
    df = read_table(source, cache_path=cache_path, dtype=str)
    df = standardise_columns(df, PRACTICE_COLUMNS, required=("practice_code", "postcode"))
    df = clean_codes(df, ["practice_code", "hb_code"])
    df = coerce_numeric(df, ["list_size"])
    if "list_size" not in df.columns:
        logger.warning("Practice table has no list size column; sizes set to 0")
        df["list_size"] = 0
    if "practice_name" not in df.columns:
        df["practice_name"] = df["practice_code"]
    return df


def load_postcode_lookup(source, cache_path=None):
    """Postcode -> latitude/longitude lookup."""
    df = read_table(source, cache_path=cache_path, dtype=str)
    df = standardise_columns(df, POSTCODE_COLUMNS, required=("postcode", "lat", "lon"))
    return coerce_numeric(df, ["lat", "lon"])


def load_health_board_lookup(source):
    """Health board code -> name."""
    df = read_table(source, dtype=str)
    df = standardise_columns(df, HEALTH_BOARD_COLUMNS, required=("hb_code", "hb_name"))
    df = clean_codes(df, ["hb_code"])
    return df[["hb_code", "hb_name"]].drop_duplicates(subset="hb_code")


def load_population(source, cache_path=None):
    """Small-area population estimates."""
    df = read_table(source, cache_path=cache_path, dtype=str)
    df = standardise_columns(df, POPULATION_COLUMNS, required=("population",))
    if "area_code" not in df.columns and "hb_code" not in df.columns:
        raise KeyError("Population table needs an area_code or hb_code column")
    df = clean_codes(df, ["area_code", "hb_code"])
    return coerce_numeric(df, ["population", "year"])


def load_area_lookup(source):
    """Small area -> health board lookup."""
    df = read_table(source, dtype=str)
    df = standardise_columns(df, AREA_LOOKUP_COLUMNS, required=("area_code", "hb_code"))
    return clean_codes(df, ["area_code", "hb_code"])


def load_prescribing(source, cache_path=None):
    """Prescribing volumes by practice and item."""
    df = read_table(source, cache_path=cache_path, dtype=str)
    df = standardise_columns(df, PRESCRIBING_COLUMNS, required=("practice_code", "paid_items"))
    df = clean_codes(df, ["practice_code", "hb_code"])
    return coerce_numeric(df, ["paid_items", "paid_quantity"])


def load_dispensers(source, cache_path=None):
    """Dispenser (community pharmacy) locations."""
    df = read_table(source, cache_path=cache_path, dtype=str)
    df = standardise_columns(df, DISPENSER_COLUMNS, required=("dispenser_code", "postcode"))
    df = clean_codes(df, ["dispenser_code", "hb_code"])
    if "dispenser_name" not in df.columns:
        df["dispenser_name"] = df["dispenser_code"]
    return df


def load_dispensing(source, cache_path=None):
    """Dispensed volumes by dispenser."""
    df = read_table(source, cache_path=cache_path, dtype=str)
    df = standardise_columns(df, DISPENSING_COLUMNS, required=("dispenser_code", "paid_items"))
    df = clean_codes(df, ["dispenser_code"])
    return coerce_numeric(df, ["paid_items"])
