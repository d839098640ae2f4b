"""Unit tests for logit bias builders."""

import pytest

from openrouter_connector import logit_bias


class TestLogitBias:
    """Tests for logit bias helpers."""

    def test_suppress(self):
        """Test suppressed tokens get -100."""
        assert logit_bias.suppress(1, 2, 3) == {1: -100, 2: -100, 3: -100}

    def test_encourage(self):
        """Test encouraged tokens get 100."""
        assert logit_bias.encourage(7) == {7: 100}

    def test_create(self):
        """Test explicit pairs are kept."""
        assert logit_bias.create((10, 5), (11, -5)) == {10: 5, 11: -5}

    def test_create_rejects_out_of_range(self):
        """Test biases outside [-100, 100] are rejected."""
        with pytest.raises(ValueError):
            logit_bias.create((10, 101))

    def test_favor(self):
        """Test favor applies a positive bias."""
        assert logit_bias.favor(50, 1, 2) == {1: 50, 2: 50}

    def test_favor_rejects_negative(self):
        """Test favor rejects a negative bias."""
        with pytest.raises(ValueError):
            logit_bias.favor(-1, 1)

    def test_favor_rejects_above_max(self):
        """Test favor rejects a bias above 100."""
        with pytest.raises(ValueError):
            logit_bias.favor(101, 1)

    def test_discourage(self):
        """Test discourage applies a negative bias."""
        assert logit_bias.discourage(-30, 4) == {4: -30}

    def test_discourage_rejects_positive(self):
        """Test discourage rejects a positive bias."""
        with pytest.raises(ValueError):
            logit_bias.discourage(10, 4)

    def test_merge_last_wins(self):
        """Test duplicate token ids resolve to the last map's value."""
        merged = logit_bias.merge(
            logit_bias.suppress(1, 2),
            logit_bias.favor(20, 2, 3),
            {3: 5},
        )
        assert merged == {1: -100, 2: 20, 3: 5}
