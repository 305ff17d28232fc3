"""
test_regions.py — Language → region lookup.
"""

import pytest

from livemap.services.regions import LANGUAGE_TO_REGION, all_regions, resolve


class TestResolve:

    def test_japanese_resolves_to_japan(self):
        region = resolve("Japanese")
        assert region.key == "Japan"
        assert region.display_name == "日本"
        assert region.lat == pytest.approx(36.20)
        assert region.lng == pytest.approx(138.25)

    def test_chinese_variants_share_one_region(self):
        assert resolve("Chinese").key == "China"
        assert resolve("ChineseSimplified") == resolve("Chinese")
        assert resolve("ChineseTraditional").key == "Taiwan"

    @pytest.mark.parametrize("language", ["Klingon", "", None, "japanese", " Japanese"])
    def test_unknown_languages_resolve_to_none(self, language):
        assert resolve(language) is None

    def test_descriptors_are_immutable(self):
        region = resolve("French")
        with pytest.raises(Exception):
            region.key = "Paris"


class TestTable:

    def test_table_covers_thirty_languages(self):
        assert len(LANGUAGE_TO_REGION) == 30

    def test_all_regions_are_distinct(self):
        keys = [r.key for r in all_regions()]
        assert len(keys) == len(set(keys))
        # Chinese + ChineseSimplified collapse into one region
        assert len(keys) == 29

    def test_coordinates_are_on_the_globe(self):
        for region in all_regions():
            assert -90 <= region.lat <= 90
            assert -180 <= region.lng <= 180
