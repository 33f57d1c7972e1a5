"""Tests for image selector expressions."""

from __future__ import annotations

import pytest

from itemdeck.expressions.image_selector import (
    Chain,
    SelectFilter,
    SelectIndex,
    format_attribution,
    get_image_urls,
    get_logo_url,
    get_primary_image,
    get_primary_image_url,
    parse_selector,
    select_image,
    select_images,
)

pytestmark = pytest.mark.unit

PLAIN = {"url": "https://img.test/p.png"}
COVER = {"url": "https://img.test/c.png", "type": "cover", "isPrimary": True}
SCREEN = {"url": "https://img.test/s.png", "type": "screenshot", "isPrimary": False}
LOGO = {"url": "https://img.test/logo.svg", "type": "logo"}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseSelector:
    def test_alternatives_split_on_fallback(self):
        selector = parse_selector("images[isPrimary=true][0] ?? images[0]")
        assert selector.alternatives == (
            Chain((SelectFilter("isPrimary", True), SelectIndex(0))),
            Chain((SelectIndex(0),)),
        )

    def test_boolean_literals(self):
        selector = parse_selector("[isPrimary=false]")
        assert selector.alternatives[0].steps == (SelectFilter("isPrimary", False),)

    def test_source_name_is_optional(self):
        assert parse_selector("[type=cover]").alternatives == parse_selector(
            "images[type=cover]"
        ).alternatives

    def test_malformed_index_is_skipped(self):
        assert parse_selector("images[abc]").alternatives == (Chain(()),)

    def test_unterminated_bracket_is_skipped(self):
        assert parse_selector("images[type=cover][1").alternatives == (
            Chain((SelectFilter("type", "cover"),)),
        )


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestSelectImages:
    def test_index(self):
        assert select_images([PLAIN, COVER], "images[1]") == [COVER]

    def test_unterminated_index_is_ignored(self):
        assert select_images([PLAIN, COVER], "images[1") == [PLAIN, COVER]

    def test_index_out_of_range_is_empty(self):
        assert select_images([PLAIN], "images[3]") == []

    def test_filter_keeps_all_matches(self):
        second_cover = {"url": "https://img.test/c2.png", "type": "cover"}
        assert select_images([PLAIN, COVER, second_cover], "images[type=cover]") == [
            COVER,
            second_cover,
        ]

    def test_filter_then_index(self):
        assert select_images([SCREEN, COVER], "images[type=cover][0]") == [COVER]

    def test_boolean_filter_false(self):
        assert select_images([COVER, SCREEN, PLAIN], "images[isPrimary=false]") == [SCREEN]

    def test_boolean_literal_does_not_match_string(self):
        assert select_images([{"url": "x", "isPrimary": "true"}], "images[isPrimary=true]") == []

    def test_fallback_uses_first_non_empty_alternative(self):
        assert select_images([PLAIN, SCREEN], "images[type=cover] ?? images[type=screenshot]") == [
            SCREEN
        ]

    def test_nothing_matches(self):
        assert select_images([PLAIN], "images[type=cover] ?? images[type=logo]") == []

    def test_empty_field_or_value_filter_is_a_no_op(self):
        assert select_images([PLAIN, COVER], "images[type=][1]") == [COVER]
        assert select_images([PLAIN, COVER], "images[=cover]") == [PLAIN, COVER]

    def test_empty_or_missing_images(self):
        assert select_images([], "images[0]") == []
        assert select_images(None, "images[0]") == []
        assert select_image(None, "images[0]") is None

    def test_select_image_returns_first(self):
        assert select_image([PLAIN, COVER], "images") == PLAIN


class TestPrimaryImage:
    def test_default_prefers_is_primary(self):
        assert get_primary_image([PLAIN, COVER]) == COVER

    def test_default_falls_back_to_cover(self):
        cover = {"url": "https://img.test/c.png", "type": "cover"}
        assert get_primary_image([PLAIN, cover]) == cover

    def test_default_falls_back_to_first(self):
        only = {"url": "x.png"}
        assert get_primary_image([only]) == only

    def test_custom_expression(self):
        assert get_primary_image([PLAIN, SCREEN], "images[type=screenshot][0]") == SCREEN

    def test_no_images(self):
        assert get_primary_image([]) is None

    def test_primary_image_url(self):
        assert get_primary_image_url([PLAIN, COVER]) == COVER["url"]
        assert get_primary_image_url([], fallback_url="placeholder.png") == "placeholder.png"
        assert get_primary_image_url(None) == ""

    def test_logo_url(self):
        assert get_logo_url([COVER, LOGO]) == LOGO["url"]
        assert get_logo_url([COVER]) is None


class TestImageUrls:
    def test_accepts_images_and_strings(self):
        assert get_image_urls([COVER, "https://img.test/raw.jpg"]) == [
            COVER["url"],
            "https://img.test/raw.jpg",
        ]

    def test_drops_relative_and_malformed_entries(self):
        images = ["relative/a.png", {"alt": "no url"}, {"url": 42}, None, "http://ok.test/b.png"]
        assert get_image_urls(images) == ["http://ok.test/b.png"]

    def test_empty(self):
        assert get_image_urls(None) == []


class TestFormatAttribution:
    def test_source_and_author(self):
        images = [
            PLAIN,
            {"url": "a", "attribution": {"source": "Wikimedia Commons", "author": "Jane Doe"}},
        ]
        assert format_attribution(images) == "Image from Wikimedia Commons by Jane Doe"

    def test_source_only(self):
        assert format_attribution([{"url": "a", "attribution": {"source": "MobyGames"}}]) == (
            "Image from MobyGames"
        )

    def test_no_attribution(self):
        assert format_attribution([PLAIN]) is None
        assert format_attribution([{"url": "a", "attribution": {"licence": "CC-BY"}}]) is None
