"""
regions.py — Map a user's declared system language to a map region.

The game reports the player's OS language ("Japanese", "ChineseSimplified",
...), not a location. We bucket players by the country most associated with
that language and pin the bucket at the country's centroid.

USAGE
─────
    from livemap.services.regions import resolve

    resolve("Japanese")   # → RegionDescriptor(key="Japan", display_name="日本", ...)
    resolve("Klingon")    # → None  (excluded from regional stats)

Several languages may share one region ("Chinese" and "ChineseSimplified"
both resolve to China), so region keys, not language names, are the
identity used by the aggregation store.
"""

from __future__ import annotations

from typing import Optional

from livemap.models.region import RegionDescriptor


def _region(key: str, display_name: str, lat: float, lng: float) -> RegionDescriptor:
    return RegionDescriptor(key=key, display_name=display_name, lat=lat, lng=lng)


_CHINA  = _region("China",  "中国",   35.86, 104.19)

# language identifier → region
LANGUAGE_TO_REGION: dict[str, RegionDescriptor] = {
    "ChineseSimplified":  _CHINA,
    "ChineseTraditional": _region("Taiwan",         "台湾",           23.69,  120.96),
    "Chinese":            _CHINA,
    "English":            _region("USA",            "アメリカ",       37.09,  -95.71),
    "Japanese":           _region("Japan",          "日本",           36.20,  138.25),
    "Russian":            _region("Russia",         "ロシア",         61.52,  105.31),
    "Korean":             _region("South Korea",    "韓国",           35.90,  127.76),
    "Spanish":            _region("Spain",          "スペイン",       40.46,   -3.74),
    "French":             _region("France",         "フランス",       46.22,    2.21),
    "Portuguese":         _region("Brazil",         "ブラジル",      -14.23,  -51.92),
    "German":             _region("Germany",        "ドイツ",         51.16,   10.45),
    "Italian":            _region("Italy",          "イタリア",       41.87,   12.56),
    "Polish":             _region("Poland",         "ポーランド",     51.91,   19.14),
    "Ukrainian":          _region("Ukraine",        "ウクライナ",     48.37,   31.16),
    "Thai":               _region("Thailand",       "タイ",           15.87,  100.99),
    "Turkish":            _region("Turkey",         "トルコ",         38.96,   35.24),
    "Vietnamese":         _region("Vietnam",        "ベトナム",       14.05,  108.27),
    "Hungarian":          _region("Hungary",        "ハンガリー",     47.16,   19.50),
    "Norwegian":          _region("Norway",         "ノルウェー",     60.47,    8.46),
    "Finnish":            _region("Finland",        "フィンランド",   61.92,   25.74),
    "Czech":              _region("Czech Republic", "チェコ",         49.81,   15.47),
    "Arabic":             _region("Saudi Arabia",   "サウジアラビア", 23.88,   45.07),
    "Dutch":              _region("Netherlands",    "オランダ",       52.13,    5.29),
    "Greek":              _region("Greece",         "ギリシャ",       39.07,   21.82),
    "Swedish":            _region("Sweden",         "スウェーデン",   60.12,   18.64),
    "Lithuanian":         _region("Lithuania",      "リトアニア",     55.16,   23.88),
    "Latvian":            _region("Latvia",         "ラトビア",       56.87,   24.60),
    "Slovak":             _region("Slovakia",       "スロバキア",     48.66,   19.69),
    "SerboCroatian":      _region("Serbia",         "セルビア",       44.01,   21.00),
    "Belarusian":         _region("Belarus",        "ベラルーシ",     53.71,   27.95),
}


def resolve(language: Optional[str]) -> Optional[RegionDescriptor]:
    """Return the region for *language*, or None when it is unknown or empty."""
    if not language:
        return None
    return LANGUAGE_TO_REGION.get(language)


def all_regions() -> list[RegionDescriptor]:
    """Distinct regions in the table, in first-seen order."""
    seen: dict[str, RegionDescriptor] = {}
    for region in LANGUAGE_TO_REGION.values():
        seen.setdefault(region.key, region)
    return list(seen.values())
