"""Scoring functions: ``(expected, actual) -> float`` in [0, 1].

None of these raise on empty or malformed answers.
"""

import math
import re
from collections import Counter

import orjson

# Numeric answers lose a quarter of the credit per unit of distance
OOLONG_NUMERIC_DECAY = 0.75

_TOKEN_SPLIT = re.compile(r"[\W_]+", re.UNICODE)


def exact_match(expected: str, actual: str) -> float:
    return 1.0 if expected.strip().lower() == actual.strip().lower() else 0.0


def _parse_number(text: str) -> float | None:
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def oolong_score(expected: str, actual: str) -> float:
    """OOLONG scoring.

    Numeric answers score ``0.75 ** |expected - actual|``. Otherwise the
    answer scores 1 when the expected label appears (case-insensitively)
    anywhere in it, which accepts templated answers such as
    ``"Label: abbreviation"``.
    """
    expected_text = expected.strip()
    actual_text = actual.strip()

    expected_num = _parse_number(expected_text)
    actual_num = _parse_number(actual_text)
    if expected_num is not None and actual_num is not None:
        return OOLONG_NUMERIC_DECAY ** abs(expected_num - actual_num)

    if expected_text.lower() in actual_text.lower():
        return 1.0
    return 0.0


def _tokenize(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT.split(text.lower()) if t]


def f1_score(expected: str, actual: str) -> float:
    """Token-level F1 over lowercase word tokens."""
    expected_tokens = _tokenize(expected)
    actual_tokens = _tokenize(actual)

    if not expected_tokens and not actual_tokens:
        return 1.0
    if not expected_tokens or not actual_tokens:
        return 0.0

    overlap = Counter(expected_tokens) & Counter(actual_tokens)
    true_positives = sum(overlap.values())
    if true_positives == 0:
        return 0.0

    precision = true_positives / len(actual_tokens)
    recall = true_positives / len(expected_tokens)
    return 2 * precision * recall / (precision + recall)


def arc_grid_match(expected: str, actual: str) -> float:
    """Compare ARC output grids structurally; whitespace and layout are ignored."""
    try:
        expected_grid = orjson.loads(expected)
        actual_grid = orjson.loads(actual.strip())
    except orjson.JSONDecodeError:
        return exact_match(expected, actual)
    return 1.0 if expected_grid == actual_grid else 0.0
