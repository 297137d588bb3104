"""Tests for the shared utility helpers."""

import json
import logging
import os

import numpy as np
import pandas as pd
import pytest

from healthmaps.pipeline import config
from healthmaps.pipeline.utils import (
    convert_time_format,
    create_timestamp_directory,
    load_json,
    save_json,
    setup_logging,
)


class TestSetupLogging:
    """Logger configuration."""

    def test_handlers_do_not_stack(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        setup_logging(str(log_file), "DEBUG")
        logger = setup_logging(str(log_file), "DEBUG")

        assert logger.name == config.LOGGER_NAME
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2

        logger.info("written to file")
        for handler in logger.handlers:
            handler.flush()
        assert "written to file" in log_file.read_text()
        setup_logging()

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            setup_logging(level="LOUD")


class TestJson:
    """JSON persistence of pipeline results."""

    def test_numpy_and_pandas_values(self, tmp_path):
        data = {
            "count": np.int64(3),
            "rate": np.float64(0.5),
            "missing": np.float64("nan"),
            "flag": np.bool_(True),
            "values": np.array([1, 2]),
            "when": pd.Timestamp("2023-01-31"),
        }
        path = save_json(data, str(tmp_path / "out" / "data.json"))

        loaded = load_json(path)
        assert loaded == {
            "count": 3,
            "rate": 0.5,
            "missing": None,
            "flag": True,
            "values": [1, 2],
            "when": "2023-01-31T00:00:00",
        }
        with open(path, encoding="utf-8") as f:
            assert json.load(f) == loaded

    def test_nested_nan_is_written_as_null(self, tmp_path):
        data = {"boards": [{"population": float("nan")}, {"population": np.float32("nan")}]}
        path = save_json(data, str(tmp_path / "nested.json"))

        with open(path, encoding="utf-8") as f:
            text = f.read()
        assert "NaN" not in text
        assert json.loads(text) == {"boards": [{"population": None}, {"population": None}]}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_json(str(tmp_path / "nope.json"))

    def test_unserialisable_object(self, tmp_path):
        with pytest.raises(TypeError):
            save_json({"x": object()}, str(tmp_path / "bad.json"))


def test_create_timestamp_directory(tmp_path):
    path = create_timestamp_directory(str(tmp_path), prefix="map")
    assert os.path.isdir(path)
    assert os.path.basename(path).startswith("map_")


@pytest.mark.parametrize(
    "seconds, expected",
    [(5, "5s"), (65, "1m 5s"), (3725, "1h 2m 5s"), (0.4, "0s")],
)
def test_convert_time_format(seconds, expected):
    assert convert_time_format(seconds) == expected
