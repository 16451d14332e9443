"""Tests for query-string wallpaper parameters."""

import pytest
from pydantic import ValidationError

from citypaper.errors import InvalidCoordinate
from citypaper.models.place import PlaceLabel
from citypaper.models.style import MapMode
from citypaper.models.viewport import AspectRatio
from citypaper.models.params import WallpaperParams


class TestFromQueryString:
    def test_full_query(self):
        params = WallpaperParams.from_query_string(
            "?lat=48.8566&lng=2.3522&zoom=14.5&style=retro&accent=F05&ratio=9x16&name=Paris"
        )
        assert params.location.as_tuple() == (48.8566, 2.3522)
        assert params.zoom == 14.5
        assert params.style is MapMode.RETRO
        assert params.accent == "#ff0055"
        assert params.ratio is AspectRatio.PHONE_9_16
        assert params.name == "Paris"

    def test_defaults_and_unknown_keys(self):
        params = WallpaperParams.from_query_string("utm_source=share")
        assert params == WallpaperParams()

    def test_last_value_wins(self):
        assert WallpaperParams.from_query_string("zoom=11&zoom=12").zoom == 12

    def test_bad_coordinate(self):
        with pytest.raises(InvalidCoordinate):
            WallpaperParams.from_query_string("lat=95&lng=0")

    def test_bad_style(self):
        with pytest.raises(ValidationError):
            WallpaperParams.from_query_string("style=neon")

    def test_bad_accent(self):
        with pytest.raises(ValueError):
            WallpaperParams.from_query_string("accent=blue")


class TestToQueryString:
    def test_trailing_zeros_trimmed(self):
        query = WallpaperParams(lat=10.5, lng=-20.0, zoom=13).to_query_string()
        assert "lat=10.5&lng=-20&zoom=13" in query
        assert "name=" not in query

    def test_round_trip_with_name(self):
        params = WallpaperParams(lat=31.2304, lng=121.4737, style=MapMode.SILVER, name="上海", ratio=AspectRatio.SQUARE)
        assert WallpaperParams.from_query_string(params.to_query_string()) == params


class TestApply:
    def test_viewport(self):
        viewport = WallpaperParams(zoom=16, ratio=AspectRatio.TABLET_3_4).viewport
        assert viewport.zoom_level == 16
        assert viewport.capture_size == (340, 453)

    def test_apply_to_label(self):
        label = PlaceLabel(display_name="Old", country="France")
        applied = WallpaperParams(accent="#00ff00", name="Paris").apply_to(label)
        assert applied.display_name == "Paris"
        assert applied.country == "France"
        assert applied.accent_color == "#00ff00"

    def test_apply_without_name_keeps_label_name(self):
        assert WallpaperParams().apply_to(PlaceLabel(display_name="Kept")).display_name == "Kept"
