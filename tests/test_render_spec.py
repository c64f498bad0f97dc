"""Tests for render spec parsing, validation and serialization."""

import json

import pytest
from pydantic import ValidationError

from tunecast.models.render_spec import (
    NOT_JSON,
    UNSUPPORTED_SHAPE,
    SlideshowSpec,
    WaveformSpec,
    WaveStyle,
    normalize_id_list,
    parse_render_spec,
    safe_parse_render_spec,
    serialize_render_spec,
)
from tunecast.utils.exceptions import InvalidSpecError


SLIDESHOW = {
    "mode": "slideshow",
    "images": [1, 2],
    "audios": [3],
    "intervalSeconds": 5,
    "autoTime": False,
    "repeatImages": True,
    "outputFileName": "my video",
}

WAVEFORM = {
    "mode": "waveform",
    "audios": [7],
    "backgroundColor": "#000000",
    "waveColor": "#00ffcc",
    "waveStyle": "bars",
}


class TestNormalizeIdList:
    """Tests for media id normalization."""

    def test_keeps_unique_integers_in_order(self):
        assert normalize_id_list([3, 1, 3, 2, 1]) == [3, 1, 2]

    def test_coerces_numeric_strings_and_integral_floats(self):
        assert normalize_id_list(["4", 5.0, " 6 "]) == [4, 5, 6]

    def test_drops_everything_else(self):
        values = [1, "x", None, True, 2.5, float("nan"), float("inf"), {"id": 3}]
        assert normalize_id_list(values) == [1]

    def test_non_list_input(self):
        assert normalize_id_list("1,2") == []
        assert normalize_id_list(None) == []


class TestParseRenderSpec:
    """Tests for parse_render_spec."""

    def test_empty_input_means_no_spec(self):
        assert parse_render_spec(None) is None
        assert parse_render_spec("") is None

    def test_parses_slideshow_dict(self):
        spec = parse_render_spec(SLIDESHOW)
        assert isinstance(spec, SlideshowSpec)
        assert spec.images == [1, 2]
        assert spec.audios == [3]
        assert spec.interval_seconds == 5.0
        assert spec.repeat_images is True
        assert spec.output_file_name == "my video"

    def test_parses_waveform_json_string(self):
        spec = parse_render_spec(json.dumps(WAVEFORM))
        assert isinstance(spec, WaveformSpec)
        assert spec.wave_style is WaveStyle.BARS
        assert spec.background_color == "#000000"

    def test_invalid_json(self):
        with pytest.raises(InvalidSpecError) as exc_info:
            parse_render_spec("{not json")
        assert exc_info.value.message == NOT_JSON

    @pytest.mark.parametrize(
        "payload",
        [
            {**SLIDESHOW, "mode": "karaoke"},
            {**SLIDESHOW, "audios": []},
            {**SLIDESHOW, "audios": ["a", None]},
            {**SLIDESHOW, "images": []},
            {**SLIDESHOW, "intervalSeconds": "5"},
            {**SLIDESHOW, "intervalSeconds": True},
            {**SLIDESHOW, "autoTime": "no"},
            {**SLIDESHOW, "outputFileName": 12},
            {**WAVEFORM, "waveStyle": "spiral"},
            {**WAVEFORM, "waveColor": 255},
            [1, 2, 3],
        ],
    )
    def test_unsupported_shapes(self, payload):
        with pytest.raises(InvalidSpecError) as exc_info:
            parse_render_spec(payload)
        assert exc_info.value.message == UNSUPPORTED_SHAPE

    def test_duplicate_ids_are_removed(self):
        spec = parse_render_spec({**SLIDESHOW, "images": [2, 2, "2", 1]})
        assert spec.images == [2, 1]

    def test_parsed_spec_is_immutable(self):
        spec = parse_render_spec(SLIDESHOW)
        with pytest.raises(ValidationError):
            spec.interval_seconds = 10

    def test_safe_parse_returns_error_message(self):
        spec, error = safe_parse_render_spec({"mode": "waveform"})
        assert spec is None
        assert error == UNSUPPORTED_SHAPE

        spec, error = safe_parse_render_spec(WAVEFORM)
        assert error is None
        assert spec.audios == [7]


class TestSerializeRenderSpec:
    """Tests for the JSON wire form."""

    @pytest.mark.parametrize("payload", [SLIDESHOW, WAVEFORM])
    def test_parse_of_serialized_spec_is_identity(self, payload):
        spec = parse_render_spec(payload)
        assert parse_render_spec(serialize_render_spec(spec)) == spec

    def test_uses_camel_case_keys(self):
        data = json.loads(serialize_render_spec(parse_render_spec(SLIDESHOW)))
        assert data["mode"] == "slideshow"
        assert data["intervalSeconds"] == 5.0
        assert data["repeatImages"] is True
        assert data["outputFileName"] == "my video"

    def test_omits_missing_output_name(self):
        data = json.loads(serialize_render_spec(parse_render_spec(WAVEFORM)))
        assert "outputFileName" not in data
        assert data["waveStyle"] == "bars"
