"""Rating normalisation and formatting.

v1 collections store ratings as bare numbers; v2 collections may use a
structured object (``{"score": 4.5, "max": 5, "source": "MobyGames"}``).
Every helper here accepts either form, plus a :class:`RatingValue` model.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Mapping
from typing import Any

from itemdeck.expressions.field_path import is_number
from itemdeck.models import RatingValue

DEFAULT_MAX = 5

Rating = int | float | RatingValue | Mapping[str, Any]


def is_structured_rating(rating: Any) -> bool:
    """True for a RatingValue or a mapping carrying a numeric ``score``."""
    if isinstance(rating, RatingValue):
        return True
    return isinstance(rating, Mapping) and is_number(rating.get("score"))


def _is_rating(rating: Any) -> bool:
    return is_number(rating) or is_structured_rating(rating)


def normalise_rating(rating: Rating, default_max: float = DEFAULT_MAX) -> RatingValue:
    """Return the structured form of *rating*, filling ``max`` when absent.

    Unknown keys of a structured rating are preserved.

    Raises
    ------
    TypeError
        If *rating* is neither a number nor a structured rating.
    """
    if isinstance(rating, RatingValue):
        if rating.max is not None:
            return rating
        return rating.model_copy(update={"max": default_max})

    if is_structured_rating(rating):
        data = dict(rating)
        if data.get("max") is None:
            data["max"] = default_max
        return RatingValue.model_validate(data)

    if is_number(rating):
        return RatingValue(score=rating, max=default_max)

    raise TypeError(f"Not a rating: {rating!r}")


def get_rating_score(rating: Any) -> float | None:
    if is_number(rating):
        return rating
    if isinstance(rating, RatingValue):
        return rating.score
    if is_structured_rating(rating):
        return rating["score"]
    return None


def get_rating_max(rating: Any, default_max: float = DEFAULT_MAX) -> float:
    if isinstance(rating, RatingValue):
        return rating.max if rating.max is not None else default_max
    if is_structured_rating(rating) and is_number(rating.get("max")):
        return rating["max"]
    return default_max


def get_rating_source(rating: Any) -> dict[str, Any] | None:
    """Source metadata (``source``, ``source_url``, ``source_count``) of a structured rating."""
    if not is_structured_rating(rating):
        return None
    value = normalise_rating(rating)
    return {
        "source": value.source,
        "source_url": value.source_url,
        "source_count": value.source_count,
    }


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_rating(rating: Rating, precision: int = 1) -> str:
    """``"4.5/5"``-style rendering."""
    value = normalise_rating(rating)
    max_value = value.max if value.max is not None else DEFAULT_MAX
    return f"{value.score:.{precision}f}/{_format_number(max_value)}"


def rating_to_percentage(rating: Rating) -> float:
    """Score as a percentage of max (0-100); 0 when max is 0."""
    value = normalise_rating(rating)
    max_value = value.max if value.max is not None else DEFAULT_MAX
    if max_value == 0:
        return 0.0
    return value.score / max_value * 100


def display_rating(
    rating: Any,
    show_max: bool = True,
    show_source: bool = False,
    precision: int = 1,
) -> str:
    """Render a rating for display; empty string for a missing rating."""
    if not _is_rating(rating):
        return ""

    value = normalise_rating(rating)
    if show_max:
        display = format_rating(value, precision)
    else:
        display = f"{value.score:.{precision}f}"

    if show_source and value.source:
        display += f" ({value.source})"
    return display


def compare_ratings(a: Any, b: Any, descending: bool = True) -> int:
    """Three-way comparison by score; a missing rating counts as -infinity.

    With the default descending order unrated entries sort last.
    """
    score_a = get_rating_score(a)
    score_b = get_rating_score(b)
    left = float("-inf") if score_a is None else score_a
    right = float("-inf") if score_b is None else score_b
    if descending:
        left, right = right, left
    return (left > right) - (left < right)


def rating_sort_key(descending: bool = True) -> Callable[[Any], Any]:
    """Key function for ``sorted()``::

        sorted(ratings, key=rating_sort_key())
    """
    return functools.cmp_to_key(functools.partial(compare_ratings, descending=descending))
