"""Tests for multilingual names."""

import pytest

from livebase.core.i18n import (
    LegacyName,
    LocalizedName,
    all_names,
    display_name,
    name_matches,
    parse_name,
    resolve_name,
)


class TestParseName:
    def test_dict(self):
        assert parse_name({"zh_CN": "牛肉干", "en": "Beef Jerky"}) == LocalizedName(
            {"zh_CN": "牛肉干", "en": "Beef Jerky"}
        )

    def test_json_string(self):
        name = parse_name('{"en": "Green Tea"}')
        assert name == LocalizedName({"en": "Green Tea"})

    def test_broken_json_kept_as_text(self):
        assert parse_name("{not json") == LegacyName("{not json")

    def test_legacy_string(self):
        assert parse_name("Green Tea") == LegacyName("Green Tea")

    def test_legacy_string_with_translations(self):
        name = parse_name("绿茶", {"en": "Green Tea"}, default_locale="zh_CN")
        assert name == LocalizedName({"zh_CN": "绿茶", "en": "Green Tea"})

    def test_blank_translations_dropped(self):
        assert parse_name({"zh_CN": "牛肉干", "en": "  "}) == LocalizedName({"zh_CN": "牛肉干"})


class TestResolveName:
    name = LocalizedName({"zh_CN": "牛肉干", "en": "Beef Jerky"})

    @pytest.mark.parametrize("locale,expected", [
        ("en", "Beef Jerky"),
        ("zh_CN", "牛肉干"),
        ("ja", "牛肉干"),
        (None, "牛肉干"),
    ])
    def test_locale_fallback(self, locale, expected):
        assert resolve_name(self.name, locale) == expected

    def test_any_translation_when_default_missing(self):
        assert resolve_name(LocalizedName({"en": "Beef Jerky"}), "ja") == "Beef Jerky"

    def test_legacy(self):
        assert resolve_name(LegacyName("Green Tea"), "en") == "Green Tea"

    def test_display_name(self):
        assert display_name({"zh_CN": "牛肉干", "en": "Beef Jerky"}, locale="en") == "Beef Jerky"


class TestNameMatches:
    name = LocalizedName({"zh_CN": "牛肉干", "en": "Beef Jerky"})

    def test_substring_any_locale(self):
        assert name_matches(self.name, "jerky")
        assert name_matches(self.name, "牛肉")
        assert not name_matches(self.name, "tea")

    def test_exact(self):
        assert name_matches(self.name, "BEEF JERKY", exact=True)
        assert not name_matches(self.name, "beef", exact=True)

    def test_blank_query_matches(self):
        assert name_matches(LegacyName("Green Tea"), "  ")

    def test_all_names(self):
        assert all_names(LegacyName("")) == []
        assert sorted(all_names(self.name)) == ["Beef Jerky", "牛肉干"]
