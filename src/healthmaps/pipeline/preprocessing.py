# -*- coding: utf-8 -*-
"""
Preprocessing Functions for Health Board Data

This module contains the glue between raw open data tables and the map:
column standardisation, postcode joins, filtering, group-by summaries,
attribute and spatial joins, and reprojection.
"""

import logging
import re

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import Point

from .config import WGS84_CRS

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def standardise_columns(df, mapping, required=()):
    """
    Rename upstream columns to the standard vocabulary.

    Header whitespace is stripped first. When several upstream names map to
    the same standard name, the first one present wins and the others are
    left untouched.

    Args:
        df: DataFrame as read from the source
        mapping: Dict of upstream name -> standard name
        required: Standard columns that must be present afterwards

    Returns:
        DataFrame with renamed columns
    """
    df = df.rename(columns=lambda c: c.strip() if isinstance(c, str) else c)

    renames = {}
    taken = set(df.columns)
    for source, target in mapping.items():
        if source not in df.columns or source == target:
            continue
        if target in taken:
            continue
        renames[source] = target
        taken.add(target)
    df = df.rename(columns=renames)

    missing = [col for col in required if col not in df.columns]
    if missing:
        raise KeyError(f"Missing required columns: {', '.join(missing)}")
    return df


def clean_codes(df, columns):
    """Cast identifier columns to stripped strings, keeping missing values."""
    df = df.copy()
    for col in columns:
        if col in df.columns:
            df[col] = df[col].map(lambda v: None if pd.isna(v) else (str(v).strip() or None))
    return df


def coerce_numeric(df, columns):
    """Convert measure columns to numbers; unparseable values become NaN."""
    df = df.copy()
    for col in columns:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def normalise_postcode(value):
    """
    Normalise a postcode to a join key: upper case, no whitespace.

    Missing values return an empty string.
    """
    if value is None or pd.isna(value):
        return ""
    return _WHITESPACE_RE.sub("", str(value)).upper()


def add_postcode_key(df, column="postcode"):
    """Add a ``postcode_key`` column built from ``column``."""
    if column not in df.columns:
        raise KeyError(f"Column not found: {column}")
    df = df.copy()
    df["postcode_key"] = df[column].map(normalise_postcode)
    return df


def attach_coordinates(df, postcode_lookup, postcode_column="postcode", drop_unmatched=True):
    """
    Geocode rows by joining their postcode to a postcode lookup.

    Args:
        df: DataFrame with a postcode column
        postcode_lookup: DataFrame with postcode, lat and lon columns
        postcode_column: Name of the postcode column in ``df``
        drop_unmatched: Drop rows whose postcode has no coordinates

    Returns:
        Point GeoDataFrame in EPSG:4326
    """
    left = add_postcode_key(df, postcode_column)

    lookup = add_postcode_key(postcode_lookup, "postcode")
    lookup = lookup[["postcode_key", "lat", "lon"]].dropna(subset=["lat", "lon"])
    lookup = lookup.drop_duplicates(subset="postcode_key", keep="first")

    # Columns from an earlier geocode would clash with the lookup
    left = left.drop(columns=[c for c in ("lat", "lon") if c in left.columns])
    merged = left.merge(lookup, on="postcode_key", how="left")

    unmatched = merged["lat"].isna() | merged["lon"].isna()
    if unmatched.any():
        sample = merged.loc[unmatched, postcode_column].astype(str).head(5).tolist()
        logger.warning(
            f"{int(unmatched.sum())} of {len(merged)} rows have no coordinates "
            f"for their postcode (e.g. {', '.join(sample)})"
        )
        if drop_unmatched:
            merged = merged.loc[~unmatched]

    merged = merged.reset_index(drop=True)
    geometry = [
        Point(lon, lat) if pd.notna(lon) and pd.notna(lat) else None
        for lon, lat in zip(merged["lon"], merged["lat"])
    ]
    gdf = gpd.GeoDataFrame(merged, geometry=geometry, crs=WGS84_CRS)
    logger.info(f"Geocoded {int(gdf.geometry.notna().sum())} rows from postcodes")
    return gdf


def reproject(gdf, crs=WGS84_CRS, assume_crs=None):
    """
    Reproject a GeoDataFrame.

    Args:
        gdf: GeoDataFrame to reproject
        crs: Target coordinate reference system
        assume_crs: CRS to set first when the frame has none

    Returns:
        GeoDataFrame in ``crs``
    """
    if gdf.crs is None:
        if assume_crs is None:
            raise ValueError("GeoDataFrame has no CRS; pass assume_crs to set one")
        gdf = gdf.set_crs(assume_crs)

    if gdf.crs.equals(crs):
        return gdf

    logger.info(f"Reprojecting {len(gdf)} features from {gdf.crs.to_string()} to {crs}")
    return gdf.to_crs(crs)


def simplify_geometries(gdf, tolerance):
    """Simplify polygons, preserving topology, to keep web maps light."""
    if not tolerance:
        return gdf
    gdf = gdf.copy()
    gdf["geometry"] = gdf.geometry.simplify(tolerance, preserve_topology=True)
    return gdf


def filter_health_boards(df, boards):
    """
    Keep rows belonging to the given health boards.

    Boards may be given as codes or names; names match case-insensitively.
    ``None`` or an empty list keeps every row.
    """
    if not boards:
        return df

    if not ({"hb_code", "hb_name"} & set(df.columns)):
        raise KeyError("Neither hb_code nor hb_name present to filter on")

    wanted = {str(b).strip().upper() for b in boards}
    mask = pd.Series(False, index=df.index)
    for col in ("hb_code", "hb_name"):
        if col in df.columns:
            values = df[col].map(lambda v: "" if pd.isna(v) else str(v).strip().upper())
            mask |= values.isin(wanted)

    filtered = df.loc[mask]
    logger.info(f"Health board filter kept {len(filtered)} of {len(df)} rows")
    return filtered


def aggregate_population(population, area_lookup=None, year=None, sex="All"):
    """
    Sum small-area population estimates to health boards.

    Args:
        population: Population table (area_code, sex, year, population)
        area_lookup: Table mapping area_code -> hb_code, used when
            ``population`` has no hb_code
        year: Year to keep; defaults to the latest year present
        sex: Value of the sex column to keep, or None for no filter

    Returns:
        DataFrame with hb_code and population
    """
    pop = population.copy()

    if sex is not None and "sex" in pop.columns:
        pop = pop[pop["sex"].astype(str).str.strip().str.lower() == str(sex).lower()]

    if "year" in pop.columns:
        years = pd.to_numeric(pop["year"], errors="coerce")
        target_year = int(years.max()) if year is None and years.notna().any() else year
        if target_year is not None:
            pop = pop[years == int(target_year)]
            logger.info(f"Using population estimates for {target_year}")

    if "hb_code" not in pop.columns:
        if area_lookup is None:
            raise KeyError("Population table has no hb_code and no area lookup was given")
        lookup = area_lookup[["area_code", "hb_code"]].drop_duplicates(subset="area_code")
        pop = pop.merge(lookup, on="area_code", how="left")
        missing = pop["hb_code"].isna().sum()
        if missing:
            logger.warning(f"{int(missing)} population rows have no health board in the area lookup")

    totals = (
        pop.dropna(subset=["hb_code"])
        .groupby("hb_code", as_index=False)["population"]
        .sum()
    )
    return totals


def summarise_practices(practices):
    """Count practices and total list size per health board."""
    if "hb_code" not in practices.columns:
        raise KeyError("Practices have no hb_code; run assign_health_board first")

    summary = (
        pd.DataFrame(practices.drop(columns="geometry", errors="ignore"))
        .dropna(subset=["hb_code"])
        .groupby("hb_code", as_index=False)
        .agg(practice_count=("practice_code", "nunique"), list_size=("list_size", "sum"))
    )
    return summary


def summarise_prescribing(prescribing, by="practice_code", item_filter=None):
    """
    Sum prescribing volumes.

    Args:
        prescribing: Prescribing table
        by: Column (or list of columns) to group by
        item_filter: Case-insensitive substring matched against
            item_description, or None for all items

    Returns:
        DataFrame with the group keys, paid_items and paid_quantity
    """
    rx = prescribing
    if item_filter:
        if "item_description" not in rx.columns:
            raise KeyError("Prescribing table has no item_description to filter on")
        mask = rx["item_description"].astype(str).str.contains(item_filter, case=False, regex=False)
        rx = rx[mask]
        logger.info(f"Item filter '{item_filter}' kept {len(rx)} prescribing rows")

    keys = [by] if isinstance(by, str) else list(by)
    measures = [col for col in ("paid_items", "paid_quantity") if col in rx.columns]
    return rx.dropna(subset=keys).groupby(keys, as_index=False)[measures].sum()


def summarise_dispensing(dispensing, dispensers):
    """Total paid items per dispenser, joined to the dispenser details."""
    totals = dispensing.dropna(subset=["dispenser_code"]).groupby(
        "dispenser_code", as_index=False
    )["paid_items"].sum()

    details = dispensers.drop_duplicates(subset="dispenser_code")
    merged = details.merge(totals, on="dispenser_code", how="inner")

    no_details = len(totals) - len(merged)
    if no_details:
        logger.warning(f"{no_details} dispensers with volumes are missing from the dispenser list")
    no_volumes = len(details) - len(merged)
    if no_volumes:
        logger.warning(f"{no_volumes} dispensers have no dispensing volumes and were dropped")
    return merged


def join_area_attributes(boundaries, table, on="hb_code", how="left"):
    """
    Attribute join of a table onto area boundaries.

    Non-key columns present in both frames are taken from ``table`` where it
    has a value; areas the table does not cover keep their own.

    Returns:
        GeoDataFrame with the boundaries' geometry and CRS
    """
    table = pd.DataFrame(table).drop(columns="geometry", errors="ignore")
    overlap = [c for c in table.columns if c in boundaries.columns and c != on]

    merged = boundaries.merge(table, on=on, how=how, suffixes=("_boundary", ""))
    for col in overlap:
        merged[col] = merged[col].combine_first(merged[f"{col}_boundary"])
    merged = merged.drop(columns=[f"{col}_boundary" for col in overlap])
    gdf = gpd.GeoDataFrame(merged, geometry=boundaries.geometry.name, crs=boundaries.crs)

    unmatched = set(boundaries[on].dropna()) - set(table[on].dropna())
    if unmatched and how == "left":
        logger.warning(f"No attributes for {len(unmatched)} areas: {', '.join(sorted(map(str, unmatched))[:5])}")
    return gdf


def assign_health_board(points, boundaries):
    """
    Fill hb_code on points from the board they fall in, then set hb_name
    from the boards table for the final code.

    Existing non-null codes are kept. A point on a shared edge takes the
    first board it touches.
    """
    if "hb_code" not in boundaries.columns:
        raise KeyError("Boundaries have no hb_code column")
    if points.crs is not None and boundaries.crs is not None and not points.crs.equals(boundaries.crs):
        boundaries = boundaries.to_crs(points.crs)

    joined = gpd.sjoin(
        points,
        boundaries[["hb_code", boundaries.geometry.name]],
        how="left",
        predicate="intersects",
        lsuffix="point",
        rsuffix="area",
    )
    # A point on a shared edge matches twice
    joined = joined[~joined.index.duplicated(keep="first")]
    spatial = joined["hb_code_area"] if "hb_code_area" in joined.columns else joined["hb_code"]

    result = points.copy()
    if "hb_code" in result.columns:
        result["hb_code"] = result["hb_code"].where(result["hb_code"].notna(), spatial)
    else:
        result["hb_code"] = spatial

    if "hb_name" in boundaries.columns:
        names = (
            boundaries.dropna(subset=["hb_code"])
            .drop_duplicates(subset="hb_code")
            .set_index("hb_code")["hb_name"]
        )
        board_names = result["hb_code"].map(names)
        if "hb_name" in result.columns:
            board_names = board_names.where(board_names.notna(), result["hb_name"])
        result["hb_name"] = board_names

    outside = result["hb_code"].isna().sum()
    if outside:
        logger.warning(f"{int(outside)} points fall outside every health board")
    return result


def dissolve_areas(gdf, by="hb_code", aggfunc="sum"):
    """Merge small areas (e.g. data zones) into larger ones.

    Only numeric attribute columns are aggregated.
    """
    geom_col = gdf.geometry.name
    numeric = [
        c for c in gdf.select_dtypes(include="number").columns if c != by
    ]
    dissolved = gdf[[by] + numeric + [geom_col]].dissolve(by=by, aggfunc=aggfunc)
    return dissolved.reset_index()


def rate_per_population(df, numerator, denominator, per=1000, name=None):
    """
    Add a rate column ``numerator / denominator * per``.

    Zero or missing denominators give NaN.
    """
    name = name or f"{numerator}_per_{per}"
    df = df.copy()
    denom = pd.to_numeric(df[denominator], errors="coerce").replace(0, np.nan)
    df[name] = pd.to_numeric(df[numerator], errors="coerce") / denom * per
    return df
