"""Tests for JSON and table serialization helpers."""

import json

import numpy as np
import pandas as pd
from scoreval.utils.serialization import load_json, save_json, save_table, to_jsonable


def test_to_jsonable_numpy_types():
    out = to_jsonable(
        {"a": np.int64(3), "b": np.float32(0.5), "c": np.array([1, 2]), "d": np.bool_(True)}
    )
    assert out == {"a": 3, "b": 0.5, "c": [1, 2], "d": True}
    assert type(out["a"]) is int


def test_non_finite_become_null(tmp_path):
    path = tmp_path / "nested" / "out.json"
    save_json({"x": np.nan, "y": [np.inf, 1.0], "z": pd.NA}, path)

    text = path.read_text()
    assert "NaN" not in text
    assert json.loads(text) == {"x": None, "y": [None, 1.0], "z": None}
    assert load_json(path)["y"] == [None, 1.0]


def test_save_table_creates_parents(tmp_path):
    path = save_table(pd.DataFrame({"a": [1, 2]}), tmp_path / "sub" / "t.csv")
    assert path.exists()
    assert pd.read_csv(path)["a"].tolist() == [1, 2]
