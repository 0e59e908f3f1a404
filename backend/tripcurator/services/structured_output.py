"""Parsing of JSON-ish LLM replies.

Every parser here takes raw model text and returns a well-formed value; when
the text cannot be parsed the call site's fallback is returned instead of
raising. None of these functions touch the network.
"""
import json
import logging
import re

from tripcurator.models import TAG_CATEGORIES

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ("high", "medium", "low")
MAX_TAGS = 8
DEFAULT_TAG_CATEGORY = "feature"


def strip_markdown(text: str) -> str:
    """Remove markdown code fences from LLM output if present."""
    text = text.strip()
    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_object(text: str | None) -> dict | None:
    """Return the first balanced {...} object in text that parses as JSON.

    Braces inside JSON strings are ignored while balancing.
    """
    if not text:
        return None
    text = strip_markdown(text)

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start:i + 1]
                    try:
                        parsed = json.loads(candidate)
                    except json.JSONDecodeError:
                        break
                    if isinstance(parsed, dict):
                        return parsed
                    break
        start = text.find("{", start + 1)
    return None


def normalize_tag_name(name: str) -> str:
    """'Rooftop Bar' -> 'rooftop-bar'."""
    return re.sub(r"\s+", "-", name.strip().lower())


def _coerce_coordinates(value) -> dict | None:
    if not isinstance(value, dict):
        return None
    try:
        lat = float(value.get("lat"))
        lng = float(value.get("lng"))
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return {"lat": lat, "lng": lng}


def parse_geocoding_response(text: str | None, fallback_name: str) -> dict:
    """Parse a geocoding reply into {name, address, coordinates, confidence, reasoning}."""
    data = extract_json_object(text)
    if data is None:
        return {
            "name": fallback_name or "Unknown Location",
            "address": None,
            "coordinates": None,
            "confidence": "low",
            "reasoning": "Failed to parse geocoding response",
        }

    confidence = str(data.get("confidence") or "").lower()
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "low"

    name = data.get("location_name") or data.get("name")
    address = data.get("address")
    return {
        "name": name if isinstance(name, str) and name.strip() else None,
        "address": address if isinstance(address, str) and address.strip() else None,
        "coordinates": _coerce_coordinates(data.get("coordinates")),
        "confidence": confidence,
        "reasoning": str(data.get("reasoning") or ""),
    }


def parse_tag_response(text: str | None, existing_names: set[str]) -> list[dict]:
    """Parse a tag-extraction reply into [{name, category, existing}]; [] when unparseable."""
    data = extract_json_object(text)
    if data is None or not isinstance(data.get("tags"), list):
        return []

    tags = []
    seen = set()
    for item in data["tags"]:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        name = normalize_tag_name(item["name"])
        if not name or name in seen:
            continue
        category = str(item.get("category") or "").strip().lower()
        if category not in TAG_CATEGORIES:
            category = DEFAULT_TAG_CATEGORY
        seen.add(name)
        tags.append({"name": name, "category": category, "existing": name in existing_names})
        if len(tags) >= MAX_TAGS:
            break
    return tags


def parse_travel_writing(text: str | None, transcription: str) -> str:
    """Return the generated description, or the raw transcription when unparseable."""
    data = extract_json_object(text)
    if data is None:
        return transcription
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        return transcription
    return description.strip()


def parse_extracted_locations(text: str | None) -> list[dict]:
    """Parse a location-extraction reply into [{name, address, url, notes}]."""
    data = extract_json_object(text)
    if data is None or not isinstance(data.get("locations"), list):
        return []

    locations = []
    for item in data["locations"]:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        locations.append({
            "name": name.strip(),
            "address": item.get("address") or None,
            "url": item.get("url") or None,
            "notes": item.get("notes") or item.get("description") or None,
        })
    return locations
