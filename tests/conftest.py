"""Shared fixtures for the healthmaps tests."""

import matplotlib
matplotlib.use("Agg")

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from healthmaps.pipeline import config


@pytest.fixture
def boards():
    """Two adjacent square health boards in WGS84."""
    return gpd.GeoDataFrame(
        {
            "hb_code": ["S08000020", "S08000030"],
            "hb_name": ["NHS Grampian", "NHS Tayside"],
        },
        geometry=[box(-4.0, 56.0, -3.0, 57.0), box(-3.0, 56.0, -2.0, 57.0)],
        crs=config.WGS84_CRS,
    )


@pytest.fixture
def raw_boards(boards):
    """Boards with the upstream boundary file column names."""
    return boards.rename(columns={"hb_code": "HBCode", "hb_name": "HBName"})


@pytest.fixture
def raw_practices():
    return pd.DataFrame(
        {
            "PracticeCode": ["10002", "10017", "20011", "99999"],
            "GPPracticeName": ["Ash Surgery", "Birch Medical Centre", "Cedar Practice", "Nowhere Clinic"],
            "Postcode": ["AB10 1AA", "ab10 1ab", "DD1  1AA", "ZZ99 9ZZ"],
            "HB": ["S08000020", "S08000020", "", "S08000030"],
            "PracticeListSize": ["4000", "9000", "16000", "1000"],
        }
    )


@pytest.fixture
def raw_postcodes():
    return pd.DataFrame(
        {
            "Postcode": ["AB10 1AA", "AB10 1AB", "DD1 1AA", "DD2 2BB"],
            "Latitude": ["56.5", "56.6", "56.4", "56.3"],
            "Longitude": ["-3.5", "-3.6", "-2.5", "-2.4"],
        }
    )


@pytest.fixture
def practices(raw_practices):
    from healthmaps.pipeline.preprocessing import clean_codes, coerce_numeric, standardise_columns

    df = standardise_columns(raw_practices, config.PRACTICE_COLUMNS)
    df = clean_codes(df, ["practice_code", "hb_code"])
    return coerce_numeric(df, ["list_size"])


@pytest.fixture
def postcodes(raw_postcodes):
    from healthmaps.pipeline.preprocessing import coerce_numeric, standardise_columns

    df = standardise_columns(raw_postcodes, config.POSTCODE_COLUMNS)
    return coerce_numeric(df, ["lat", "lon"])


@pytest.fixture
def practice_points(practices, postcodes):
    from healthmaps.pipeline.preprocessing import attach_coordinates

    return attach_coordinates(practices, postcodes)


@pytest.fixture
def input_files(tmp_path, raw_boards, raw_practices, raw_postcodes):
    """Upstream-shaped input files for an end-to-end run."""
    paths = {
        "boundaries": tmp_path / "boards.geojson",
        "practices": tmp_path / "practices.csv",
        "postcodes": tmp_path / "postcodes.csv",
        "population": tmp_path / "population.csv",
        "area_lookup": tmp_path / "datazones.csv",
        "prescribing": tmp_path / "prescribing.csv",
        "dispensers": tmp_path / "dispensers.csv",
        "dispensing": tmp_path / "dispensing.csv",
    }

    raw_boards.to_file(paths["boundaries"], driver="GeoJSON")
    raw_practices.to_csv(paths["practices"], index=False)
    raw_postcodes.to_csv(paths["postcodes"], index=False)

    pd.DataFrame(
        {
            "DataZone": ["S01000001", "S01000002", "S01000003", "S01000001", "S01000003"],
            "Sex": ["All", "All", "All", "Male", "All"],
            "Year": [2021, 2021, 2021, 2021, 2020],
            "AllAges": [800, 700, 1200, 390, 1100],
        }
    ).to_csv(paths["population"], index=False)

    pd.DataFrame(
        {
            "DataZone": ["S01000001", "S01000002", "S01000003"],
            "HB": ["S08000020", "S08000020", "S08000030"],
        }
    ).to_csv(paths["area_lookup"], index=False)

    pd.DataFrame(
        {
            "HBT": ["S08000020", "S08000020", "S08000030", "S08000030"],
            "GPPractice": ["10002", "10017", "20011", "99996"],
            "BNFItemDescription": ["PARACETAMOL 500MG TABS", "IBUPROFEN 200MG TABS",
                                   "PARACETAMOL 500MG CAPS", "PARACETAMOL 500MG TABS"],
            "NumberOfPaidItems": [40, 10, 32, 5],
            "PaidQuantity": [1200, 240, 960, 150],
            "PaidDateMonth": ["202301", "202301", "202301", "202301"],
        }
    ).to_csv(paths["prescribing"], index=False)

    pd.DataFrame(
        {
            "DispCode": ["1001", "1002", "1003"],
            "DispLocationName": ["Ash Pharmacy", "Dee Chemist", "Lost Pharmacy"],
            "DispLocationPostcode": ["AB10 1AB", "DD2 2BB", "ZZ1 1ZZ"],
        }
    ).to_csv(paths["dispensers"], index=False)

    pd.DataFrame(
        {
            "DispCode": ["1001", "1001", "1002", "1004"],
            "NumberOfPaidItems": [100, 50, 80, 20],
        }
    ).to_csv(paths["dispensing"], index=False)

    return paths


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point optional default inputs and URLs away from the real data folder."""
    missing = tmp_path / "missing"
    monkeypatch.setattr(config, "SOURCE_URLS", {})
    monkeypatch.setattr(config, "CACHE_DIR", str(tmp_path / "cache"))
    for name in ("HEALTH_BOARD_LOOKUP_PATH", "POPULATION_PATH", "AREA_LOOKUP_PATH",
                 "PRESCRIBING_PATH", "DISPENSERS_PATH", "DISPENSING_PATH",
                 "PRACTICES_PATH", "POSTCODES_PATH", "BOUNDARIES_PATH"):
        monkeypatch.setattr(config, name, str(missing / f"{name.lower()}.csv"))
    return config
