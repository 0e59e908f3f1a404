import pytest
from tripcurator.services.structured_output import (
    extract_json_object,
    normalize_tag_name,
    parse_extracted_locations,
    parse_geocoding_response,
    parse_tag_response,
    parse_travel_writing,
    strip_markdown,
)


# --- JSON extraction ---


def test_strip_markdown_code_fence():
    assert strip_markdown('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_markdown('  {"a": 1}  ') == '{"a": 1}'


def test_extract_json_object_with_surrounding_prose():
    text = 'Sure! Here is the result:\n{"location_name": "Cafe", "confidence": "high"}\nHope that helps.'
    assert extract_json_object(text) == {"location_name": "Cafe", "confidence": "high"}


def test_extract_json_object_ignores_braces_inside_strings():
    text = '{"reasoning": "found {braces} in text", "confidence": "medium"} trailing }'
    assert extract_json_object(text) == {"reasoning": "found {braces} in text", "confidence": "medium"}


def test_extract_json_object_takes_first_balanced_object():
    text = '{"first": {"nested": true}} {"second": 2}'
    assert extract_json_object(text) == {"first": {"nested": True}}


def test_extract_json_object_skips_invalid_candidate():
    text = '{not json} then {"ok": 1}'
    assert extract_json_object(text) == {"ok": 1}


@pytest.mark.parametrize("text", [None, "", "no json here", "{unterminated", "[1, 2, 3]"])
def test_extract_json_object_returns_none(text):
    assert extract_json_object(text) is None


# --- Geocoding ---


@pytest.mark.parametrize("reply", [
    "I could not find that place.",
    "{ this is : not json }",
    '{"location_name": "Cafe", "coordinates": {"lat": 1',
    "",
    None,
])
def test_unparseable_geocoding_is_low_confidence_without_coordinates(reply):
    result = parse_geocoding_response(reply, fallback_name="Example Bistro")
    assert result["confidence"] == "low"
    assert result["coordinates"] is None
    assert result["name"] == "Example Bistro"
    assert result["reasoning"] == "Failed to parse geocoding response"


def test_unparseable_geocoding_without_title_uses_unknown_location():
    result = parse_geocoding_response("nope", fallback_name="")
    assert result["name"] == "Unknown Location"


def test_geocoding_parses_coordinates():
    reply = """```json
{
  "location_name": "Time Out Market",
  "address": "Av. 24 de Julho 49, Lisboa",
  "coordinates": { "lat": 38.7069, "lng": -9.1459 },
  "confidence": "HIGH",
  "reasoning": "Well known market"
}
```"""
    result = parse_geocoding_response(reply, fallback_name="ignored")
    assert result["name"] == "Time Out Market"
    assert result["address"] == "Av. 24 de Julho 49, Lisboa"
    assert result["coordinates"] == {"lat": 38.7069, "lng": -9.1459}
    assert result["confidence"] == "high"


def test_geocoding_drops_out_of_range_coordinates():
    reply = '{"location_name": "Nowhere", "coordinates": {"lat": 123.0, "lng": 20.0}, "confidence": "high"}'
    assert parse_geocoding_response(reply, "x")["coordinates"] is None


def test_geocoding_null_coordinates_and_unknown_confidence():
    reply = '{"location_name": "Somewhere", "coordinates": null, "confidence": "certain"}'
    result = parse_geocoding_response(reply, "x")
    assert result["coordinates"] is None
    assert result["confidence"] == "low"


def test_geocoding_accepts_numeric_strings():
    reply = '{"location_name": "A", "coordinates": {"lat": "10", "lng": "20"}, "confidence": "medium"}'
    assert parse_geocoding_response(reply, "x")["coordinates"] == {"lat": 10.0, "lng": 20.0}


# --- Tags ---


def test_normalize_tag_name():
    assert normalize_tag_name("Rooftop Bar") == "rooftop-bar"
    assert normalize_tag_name("  Late   Night ") == "late-night"


def test_parse_tags_normalizes_and_marks_existing():
    reply = """{"tags": [
        {"name": "Rooftop Bar", "category": "place_type", "existing": false},
        {"name": "sunset", "category": "timing", "existing": false},
        {"name": "rooftop bar", "category": "place_type"},
        {"name": "great vibes", "category": "mood"}
    ]}"""
    tags = parse_tag_response(reply, existing_names={"sunset"})
    assert tags == [
        {"name": "rooftop-bar", "category": "place_type", "existing": False},
        {"name": "sunset", "category": "timing", "existing": True},
        {"name": "great-vibes", "category": "feature", "existing": False},
    ]


def test_parse_tags_caps_at_eight():
    items = ",".join(f'{{"name": "tag{i}", "category": "feature"}}' for i in range(12))
    tags = parse_tag_response(f'{{"tags": [{items}]}}', set())
    assert len(tags) == 8


@pytest.mark.parametrize("reply", ["garbage", '{"tags": "rooftop"}', '{"other": []}', None])
def test_parse_tags_unparseable_is_empty(reply):
    assert parse_tag_response(reply, set()) == []


# --- Travel writing ---


def test_parse_travel_writing():
    assert parse_travel_writing('{"description": "  Golden light on tiled walls.  "}', "raw") == "Golden light on tiled walls."


def test_parse_travel_writing_falls_back_to_transcription():
    assert parse_travel_writing("Here you go: lovely place", "we loved the sardines") == "we loved the sardines"
    assert parse_travel_writing('{"description": ""}', "raw notes") == "raw notes"


# --- Extracted locations ---


def test_parse_extracted_locations():
    reply = """{"locations": [
        {"name": "Pasteis de Belem", "address": "R. de Belem 84-92", "url": null, "notes": "custard tarts"},
        {"name": "  ", "address": null},
        {"name": "LX Factory", "description": "Sunday market"}
    ]}"""
    assert parse_extracted_locations(reply) == [
        {"name": "Pasteis de Belem", "address": "R. de Belem 84-92", "url": None, "notes": "custard tarts"},
        {"name": "LX Factory", "address": None, "url": None, "notes": "Sunday market"},
    ]


def test_parse_extracted_locations_unparseable():
    assert parse_extracted_locations("I found nothing") == []
