# backend/app/services/review_transform.py
"""
Raw provider item -> canonical review record.

DataForSEO returns slightly different shapes per platform (and has changed them
over time): the rating may be a nested object, a bare number or a "score"; the
author may live under `user_profile` or be flat, and so on.

Each canonical field is described by a FieldRule: an ordered list of extractors
(aliases) plus a coercion. Rules are evaluated in order and the first alias that
yields a usable value wins, so behaviour is deterministic for every shape.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from dateutil import parser as date_parser

MAX_AUTHOR_NAME_LEN = 255
MAX_TEXT_LEN = 2000
MIN_RATING = 1
MAX_RATING = 5
DEFAULT_AUTHOR_NAME = "Anonymous"
DEFAULT_RATING = MAX_RATING

Extractor = Callable[[Dict[str, Any]], Any]


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

def path(*keys: str) -> Extractor:
    """Nested dict lookup: path("rating", "value") -> item["rating"]["value"]."""

    def _extract(item: Dict[str, Any]) -> Any:
        value: Any = item
        for key in keys:
            if not isinstance(value, dict):
                return None
            value = value.get(key)
        return value

    _extract.__name__ = ".".join(keys)
    return _extract


def scalar(*keys: str) -> Extractor:
    """Like path() but ignores dict/list values (e.g. a bare numeric rating)."""
    inner = path(*keys)

    def _extract(item: Dict[str, Any]) -> Any:
        value = inner(item)
        if isinstance(value, (dict, list)):
            return None
        return value

    _extract.__name__ = f"scalar:{inner.__name__}"
    return _extract


def first_of(list_key: str, *keys: str) -> Extractor:
    """Lookup inside the first element of a list field (e.g. responses[0].text)."""
    inner = path(*keys)

    def _extract(item: Dict[str, Any]) -> Any:
        values = item.get(list_key)
        if not isinstance(values, list) or not values:
            return None
        head = values[0]
        return inner(head) if isinstance(head, dict) else None

    _extract.__name__ = f"{list_key}[0].{inner.__name__}"
    return _extract


# ---------------------------------------------------------------------------
# Coercions (return None when the value is unusable)
# ---------------------------------------------------------------------------

def _to_identifier(value: Any) -> Optional[str]:
    text = str(value).strip()
    return text[:255] or None


def _truncate(limit: int) -> Callable[[Any], Optional[str]]:
    def _coerce(value: Any) -> Optional[str]:
        if not isinstance(value, str):
            value = str(value)
        value = value.strip()
        return value[:limit] or None

    return _coerce


def clamp_rating(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return int(max(MIN_RATING, min(MAX_RATING, round(number))))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse provider timestamps into naive UTC datetimes."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, OverflowError, TypeError):
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _to_count(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldRule:
    extractors: Sequence[Extractor]
    coerce: Callable[[Any], Any]
    default: Any = None

    def evaluate(self, item: Dict[str, Any]) -> Any:
        for extractor in self.extractors:
            raw = extractor(item)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            value = self.coerce(raw)
            if value is not None:
                return value
        return self.default


FIELD_RULES: Dict[str, FieldRule] = {
    "external_id": FieldRule(
        extractors=(scalar("review_id"), scalar("id")),
        coerce=_to_identifier,
    ),
    "author_name": FieldRule(
        extractors=(
            path("user_profile", "name"),
            scalar("author"),
            scalar("reviewer_name"),
            scalar("profile_name"),
        ),
        coerce=_truncate(MAX_AUTHOR_NAME_LEN),
        default=DEFAULT_AUTHOR_NAME,
    ),
    "rating": FieldRule(
        extractors=(path("rating", "value"), scalar("rating"), scalar("score")),
        coerce=clamp_rating,
        default=DEFAULT_RATING,
    ),
    "text": FieldRule(
        extractors=(scalar("review_text"), scalar("text"), scalar("content"), scalar("original_review_text")),
        coerce=_truncate(MAX_TEXT_LEN),
    ),
    "posted_at": FieldRule(
        extractors=(
            scalar("timestamp"),
            scalar("date_of_review"),
            scalar("published_at"),
            scalar("created_at"),
            scalar("date"),
        ),
        coerce=parse_timestamp,
    ),
    "review_url": FieldRule(
        extractors=(scalar("review_url"), scalar("url"), scalar("link")),
        coerce=_truncate(MAX_TEXT_LEN),
    ),
    "author_photo_url": FieldRule(
        extractors=(
            path("user_profile", "photo_url"),
            path("user_profile", "image_url"),
            scalar("profile_image_url"),
            scalar("avatar"),
        ),
        coerce=_truncate(MAX_TEXT_LEN),
    ),
    "helpful_count": FieldRule(
        extractors=(scalar("helpful_count"), scalar("helpful_votes"), scalar("likes")),
        coerce=_to_count,
        default=0,
    ),
    "response_text": FieldRule(
        extractors=(path("response", "text"), scalar("owner_answer"), first_of("responses", "text")),
        coerce=_truncate(MAX_TEXT_LEN),
    ),
    "response_date": FieldRule(
        extractors=(path("response", "date"), scalar("owner_timestamp"), first_of("responses", "timestamp")),
        coerce=parse_timestamp,
    ),
}


def transform_review(item: Dict[str, Any], job: Any) -> Optional[Dict[str, Any]]:
    """
    Map one raw item to an `external_reviews` row for `job`.

    Returns None when no external id can be derived; such an item cannot be
    written idempotently and is dropped by the importer.
    """
    if not isinstance(item, dict):
        return None

    fields = {name: rule.evaluate(item) for name, rule in FIELD_RULES.items()}
    if not fields["external_id"]:
        return None

    if fields["posted_at"] is None:
        fields["posted_at"] = datetime.utcnow()

    platform = getattr(job.platform, "value", job.platform)
    return {
        "operator_id": job.operator_id,
        "source": platform,
        "job_id": job.id,
        "place_name": job.source_business_name,
        **fields,
    }
