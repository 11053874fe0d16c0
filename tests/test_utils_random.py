"""Tests for utils.random module (seed management)."""

import random

import numpy as np
import pytest
from scoreval.utils.random import apply_seed_global, iteration_seeds, set_random_seed


class TestSetRandomSeed:
    """Tests for set_random_seed."""

    def test_seeds_numpy(self):
        set_random_seed(42)
        a = np.random.random(5)

        set_random_seed(42)
        b = np.random.random(5)

        np.testing.assert_array_equal(a, b)

    def test_seeds_python_random(self):
        set_random_seed(99)
        a = [random.random() for _ in range(5)]

        set_random_seed(99)
        b = [random.random() for _ in range(5)]

        assert a == b


class TestApplySeedGlobal:
    """Tests for SEED_GLOBAL handling."""

    def test_unset(self, monkeypatch):
        monkeypatch.delenv("SEED_GLOBAL", raising=False)
        assert apply_seed_global() is None

    def test_valid(self, monkeypatch):
        monkeypatch.setenv("SEED_GLOBAL", "7")
        assert apply_seed_global() == 7

    @pytest.mark.parametrize("value", ["", "abc", "-1", str(2**33)])
    def test_invalid_ignored(self, monkeypatch, value):
        monkeypatch.setenv("SEED_GLOBAL", value)
        assert apply_seed_global() is None


class TestIterationSeeds:
    """Tests for per-iteration seed streams."""

    def test_deterministic(self):
        assert iteration_seeds(123, 10) == iteration_seeds(123, 10)

    def test_prefix_stable(self):
        # Seeds for the first iterations do not depend on how many are requested
        assert iteration_seeds(5, 20)[:8] == iteration_seeds(5, 8)

    def test_distinct(self):
        seeds = iteration_seeds(0, 200)
        assert len(set(seeds)) == 200
        assert all(0 <= s < 2**32 for s in seeds)

    def test_base_seed_changes_stream(self):
        assert iteration_seeds(0, 5) != iteration_seeds(1, 5)

    def test_zero_and_negative(self):
        assert iteration_seeds(0, 0) == []
        with pytest.raises(ValueError):
            iteration_seeds(0, -1)
