"""Tests for tile substitution tokens."""

import pytest

from pg_querytables.errors import InvalidTileError, InvalidTokenError
from pg_querytables.utils import substitution

LAYER_SQL = (
    "SELECT ST_AsMVTGeom(the_geom_webmercator, !bbox!) "
    "FROM roads WHERE the_geom_webmercator && !bbox! "
    "AND width > !pixel_width! * 2 AND !scale_denominator! < 1e6"
)


class TestTokens:

    def test_lists_present_tokens(self):
        assert substitution.tokens(LAYER_SQL) == ["bbox", "scale_denominator", "pixel_width"]

    def test_variables(self):
        assert substitution.tokens("SELECT @zoom, @x, @y FROM t") == ["var_zoom", "var_x", "var_y"]

    def test_no_tokens(self):
        assert substitution.tokens("SELECT 1") == []
        assert not substitution.has_tokens("SELECT 1")

    def test_has_tokens(self):
        assert substitution.has_tokens("SELECT !tile_bbox!")


class TestReplace:

    def test_defaults(self):
        sql = substitution.replace("SELECT * FROM t WHERE g && !bbox!")

        assert sql == (
            "SELECT * FROM t WHERE g && ST_MakeEnvelope(-20037508.342789245, "
            "-20037508.342789245, 20037508.342789245, 20037508.342789245, 3857)"
        )

    def test_every_occurrence(self):
        sql = substitution.replace("!pixel_width! + !pixel_width!", {"pixel_width": "5"})
        assert sql == "5 + 5"

    def test_variables_kept_by_default(self):
        assert substitution.replace("SELECT @zoom, !tile_bbox!") == "SELECT @zoom, !tile_bbox!"

    def test_variable_values(self):
        sql = substitution.replace("SELECT @zoom", {"var_zoom": "3"})
        assert sql == "SELECT 3"

    def test_values_are_literal(self):
        sql = substitution.replace("SELECT !bbox!", {"bbox": r"'\1\g<0>'"})
        assert sql == r"SELECT '\1\g<0>'"

    def test_unknown_token(self):
        with pytest.raises(InvalidTokenError, match="nope"):
            substitution.replace("SELECT 1", {"nope": "1"})

    def test_result_has_no_mapnik_tokens(self):
        sql = substitution.replace(LAYER_SQL)
        assert not substitution.has_tokens(sql)


class TestReplaceXyz:

    def test_world_tile(self):
        sql = substitution.replace_xyz("SELECT !pixel_width!, !pixel_height!, !scale_denominator!")

        assert sql == "SELECT 156543.03392804097656, 156543.03392804097656, 559082264.02871777343"

    def test_world_tile_matches_defaults(self):
        assert substitution.replace_xyz(LAYER_SQL) == substitution.replace(LAYER_SQL)

    def test_tile_bbox(self):
        sql = substitution.replace_xyz("SELECT !bbox!", z=1, x=0, y=0)
        assert sql == "SELECT ST_MakeEnvelope(-20037508.342789245, 0, 0, 20037508.342789245, 3857)"

    def test_explicit_values_win(self):
        sql = substitution.replace_xyz("SELECT !bbox!", z=3, bbox="my_bbox")
        assert sql == "SELECT my_bbox"

    def test_invalid_tile(self):
        with pytest.raises(InvalidTileError):
            substitution.replace_xyz("SELECT !bbox!", z=1, x=5, y=0)

    def test_unknown_extra_value(self):
        with pytest.raises(InvalidTokenError):
            substitution.replace_xyz("SELECT 1", zoom="3")
