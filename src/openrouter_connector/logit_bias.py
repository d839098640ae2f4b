"""Logit bias builders.

A logit bias maps token ids to a bias in [-100, 100]. -100 effectively
bans a token, 100 effectively forces it.
"""

from collections.abc import Iterable, Mapping

MIN_BIAS = -100
MAX_BIAS = 100


def validate_bias(bias: int) -> int:
    """Return ``bias`` unchanged, or raise ValueError when out of range."""
    if bias < MIN_BIAS or bias > MAX_BIAS:
        raise ValueError(
            f"Bias value {bias} is out of range. Must be between {MIN_BIAS} and {MAX_BIAS}."
        )
    return bias


def create(*biases: tuple[int, int]) -> dict[int, int]:
    """Create a logit bias map from ``(token_id, bias)`` pairs.

    Raises:
        ValueError: If any bias is outside [-100, 100].
    """
    result: dict[int, int] = {}
    for token_id, bias in biases:
        result[token_id] = validate_bias(bias)
    return result


def suppress(*token_ids: int) -> dict[int, int]:
    """Ban the given tokens (bias -100)."""
    return {token_id: MIN_BIAS for token_id in token_ids}


def encourage(*token_ids: int) -> dict[int, int]:
    """Strongly favor the given tokens (bias 100)."""
    return {token_id: MAX_BIAS for token_id in token_ids}


def discourage(bias: int, *token_ids: int) -> dict[int, int]:
    """Reduce the likelihood of tokens with a bias in [-100, 0].

    Raises:
        ValueError: If ``bias`` is positive or below -100.
    """
    if bias > 0:
        raise ValueError("Bias should be negative for discouraging tokens.")
    if bias < MIN_BIAS:
        raise ValueError(f"Bias cannot be less than {MIN_BIAS}.")
    return {token_id: bias for token_id in token_ids}


def favor(bias: int, *token_ids: int) -> dict[int, int]:
    """Increase the likelihood of tokens with a bias in [0, 100].

    Raises:
        ValueError: If ``bias`` is negative or above 100.
    """
    if bias < 0:
        raise ValueError("Bias should be positive for favoring tokens.")
    if bias > MAX_BIAS:
        raise ValueError(f"Bias cannot be greater than {MAX_BIAS}.")
    return {token_id: bias for token_id in token_ids}


def merge(*biases: Mapping[int, int] | Iterable[tuple[int, int]]) -> dict[int, int]:
    """Merge bias maps; later maps win on duplicate token ids."""
    result: dict[int, int] = {}
    for bias in biases:
        result.update(bias)
    return result
