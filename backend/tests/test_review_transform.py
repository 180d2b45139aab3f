"""
Tests for review_transform.py

One test per alias of the field rules plus the record-level behaviour.
"""
from datetime import datetime
from types import SimpleNamespace

import pytest

from app.models.review_sync_job import Platform
from app.services.review_transform import (
    DEFAULT_AUTHOR_NAME,
    FIELD_RULES,
    MAX_AUTHOR_NAME_LEN,
    MAX_TEXT_LEN,
    clamp_rating,
    parse_timestamp,
    transform_review,
)

from tests.fixtures.review_fixtures import google_item, tripadvisor_item


JOB = SimpleNamespace(
    id="job-1",
    operator_id="operator-1",
    platform=Platform.TRIPADVISOR,
    source_business_name="Sunset Tours",
)


def rule(name, item):
    return FIELD_RULES[name].evaluate(item)


class TestExternalIdRule:
    def test_review_id_preferred_over_id(self):
        assert rule("external_id", {"review_id": "r-1", "id": "x-1"}) == "r-1"

    def test_falls_back_to_id(self):
        assert rule("external_id", {"id": 42}) == "42"

    def test_blank_values_are_not_identifiers(self):
        assert rule("external_id", {"review_id": "  ", "id": ""}) is None


class TestRatingRule:
    def test_nested_value(self):
        assert rule("rating", {"rating": {"value": 4}}) == 4

    def test_bare_number(self):
        assert rule("rating", {"rating": 3}) == 3

    def test_score_alias(self):
        assert rule("rating", {"score": "2"}) == 2

    def test_nested_value_wins_over_score(self):
        assert rule("rating", {"rating": {"value": 1}, "score": 5}) == 1

    def test_unparseable_rating_falls_through_to_next_alias(self):
        assert rule("rating", {"rating": "n/a", "score": 4}) == 4

    @pytest.mark.parametrize("raw, expected", [(0, 1), (-3, 1), (9, 5), (4.6, 5), ("10", 5)])
    def test_clamped_into_range(self, raw, expected):
        assert clamp_rating(raw) == expected

    def test_missing_rating_defaults_to_max(self):
        assert rule("rating", {}) == 5


class TestAuthorRule:
    def test_user_profile_name(self):
        assert rule("author_name", {"user_profile": {"name": "Ann"}, "author": "Bob"}) == "Ann"

    def test_flat_author(self):
        assert rule("author_name", {"author": "Bob"}) == "Bob"

    def test_reviewer_name(self):
        assert rule("author_name", {"reviewer_name": "Cy"}) == "Cy"

    def test_google_profile_name(self):
        assert rule("author_name", {"profile_name": "Dee"}) == "Dee"

    def test_defaults_to_anonymous(self):
        assert rule("author_name", {}) == DEFAULT_AUTHOR_NAME

    def test_truncated(self):
        assert len(rule("author_name", {"author": "x" * 400})) == MAX_AUTHOR_NAME_LEN


class TestTextRule:
    def test_review_text_then_text_then_content(self):
        assert rule("text", {"review_text": "a", "text": "b", "content": "c"}) == "a"
        assert rule("text", {"text": "b", "content": "c"}) == "b"
        assert rule("text", {"content": "c"}) == "c"

    def test_truncated(self):
        assert len(rule("text", {"review_text": "y" * 5000})) == MAX_TEXT_LEN

    def test_absent_text_is_none(self):
        assert rule("text", {}) is None


class TestOtherRules:
    def test_helpful_count_defaults_to_zero(self):
        assert rule("helpful_count", {}) == 0

    def test_helpful_count_aliases(self):
        assert rule("helpful_count", {"helpful_votes": 3}) == 3
        assert rule("helpful_count", {"likes": "7"}) == 7

    def test_response_from_responses_list(self):
        item = {"responses": [{"text": "Thanks", "timestamp": "2024-05-14 00:00:00 +00:00"}]}
        assert rule("response_text", item) == "Thanks"
        assert rule("response_date", item) == datetime(2024, 5, 14)

    def test_response_from_owner_answer(self):
        assert rule("response_text", {"owner_answer": "Welcome"}) == "Welcome"

    def test_photo_aliases(self):
        assert rule("author_photo_url", {"user_profile": {"photo_url": "a"}, "avatar": "b"}) == "a"
        assert rule("author_photo_url", {"avatar": "b"}) == "b"


class TestParseTimestamp:
    def test_dataforseo_format_converted_to_naive_utc(self):
        assert parse_timestamp("2024-03-01 10:15:00 +02:00") == datetime(2024, 3, 1, 8, 15)

    def test_iso_date(self):
        assert parse_timestamp("2023-12-31") == datetime(2023, 12, 31)

    def test_garbage_is_none(self):
        assert parse_timestamp("not a date") is None


class TestTransformReview:
    def test_tripadvisor_item(self):
        record = transform_review(tripadvisor_item(7), JOB)
        assert record["operator_id"] == "operator-1"
        assert record["source"] == "tripadvisor"
        assert record["external_id"] == "ta-7"
        assert record["author_name"] == "Traveller 7"
        assert record["rating"] == 5
        assert record["place_name"] == "Sunset Tours"
        assert record["helpful_count"] == 2
        assert record["response_text"] == "Thanks!"
        assert record["posted_at"] == datetime(2024, 5, 12)

    def test_google_item(self):
        record = transform_review(google_item(3), JOB)
        assert record["external_id"] == "g-3"
        assert record["author_name"] == "Guest 3"
        assert record["rating"] == 4
        assert record["review_url"] == "https://www.google.com/maps/reviews/3"
        assert record["response_text"] == "See you again"

    def test_item_without_identifier_is_dropped(self):
        item = tripadvisor_item(1)
        del item["review_id"]
        assert transform_review(item, JOB) is None

    def test_non_dict_item_is_dropped(self):
        assert transform_review("garbage", JOB) is None

    def test_missing_posted_at_defaults_to_now(self):
        item = {"review_id": "r-1"}
        record = transform_review(item, JOB)
        assert isinstance(record["posted_at"], datetime)
