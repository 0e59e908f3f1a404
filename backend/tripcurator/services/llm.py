import logging
from dataclasses import dataclass

from groq import Groq
from sqlalchemy.orm import Session

from tripcurator.services.cost_tracker import CostEntry, track_api_usage
from tripcurator.services.settings import get_setting
from tripcurator.services.structured_output import (
    parse_extracted_locations,
    parse_geocoding_response,
    parse_tag_response,
    parse_travel_writing,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"
DEFAULT_TRANSCRIPTION_MODEL = "whisper-large-v3-turbo"
AUDIO_BYTES_PER_SECOND = 16000  # rough estimate for compressed webm/opus

_clients: dict[str, Groq] = {}


class LLMNotConfiguredError(RuntimeError):
    """No API key is configured for the LLM provider."""


class LLMServiceError(RuntimeError):
    """The LLM provider rejected or failed a request."""


@dataclass
class LLMResult:
    text: str
    input_tokens: int
    output_tokens: int


@dataclass
class Transcription:
    text: str
    duration: int


def _get_client(api_key: str) -> Groq:
    client = _clients.get(api_key)
    if client is None:
        client = Groq(api_key=api_key)
        _clients[api_key] = client
    return client


def _require_api_key(db: Session) -> str:
    api_key = get_setting(db, "groq_api_key")
    if not api_key:
        raise LLMNotConfiguredError("Groq API key not configured. Please add it in the admin panel.")
    return api_key


def call_llm(
    db: Session,
    prompt: str,
    user_id: str | None,
    operation: str,
    location_id: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
) -> LLMResult:
    """Send a single-prompt completion and record its usage."""
    client = _get_client(_require_api_key(db))
    model = get_setting(db, "llm_model") or DEFAULT_MODEL

    try:
        response = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as e:
        raise LLMServiceError(f"LLM API error: {e}") from e

    usage = getattr(response, "usage", None)
    input_tokens = (usage.prompt_tokens if usage else 0) or 0
    output_tokens = (usage.completion_tokens if usage else 0) or 0

    track_api_usage(db, CostEntry(
        user_id=user_id,
        service="groq",
        operation=operation,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        model=model,
        location_id=location_id,
    ))

    text = ""
    if response.choices:
        text = response.choices[0].message.content or ""
    logger.info(f"LLM {operation} ({model}): {input_tokens} in / {output_tokens} out")
    return LLMResult(text=text, input_tokens=input_tokens, output_tokens=output_tokens)


def transcribe_audio(
    db: Session,
    audio: bytes,
    user_id: str | None,
    location_id: str | None = None,
    filename: str = "recording.webm",
) -> Transcription:
    """Transcribe a voice note. Duration is estimated from the byte size, not measured."""
    client = _get_client(_require_api_key(db))
    model = get_setting(db, "transcription_model") or DEFAULT_TRANSCRIPTION_MODEL

    try:
        response = client.audio.transcriptions.create(
            file=(filename, audio),
            model=model,
            response_format="json",
            temperature=0.0,
        )
    except Exception as e:
        raise LLMServiceError(f"Transcription API error: {e}") from e

    estimated_duration = round(len(audio) / AUDIO_BYTES_PER_SECOND)

    track_api_usage(db, CostEntry(
        user_id=user_id,
        service="groq_audio",
        operation="transcribe",
        audio_duration_seconds=estimated_duration,
        model=model,
        location_id=location_id,
    ))

    text = (getattr(response, "text", "") or "").strip()
    return Transcription(text=text, duration=estimated_duration)


GEOCODE_PROMPT = """Extract the geographic location from this content. Return only valid JSON, no other text.

URL: {url}
Page Title: {title}
Page Content (excerpt): {content}
User Notes: {notes}

Return JSON in this exact format:
{{
  "location_name": "Name of the place",
  "address": "Full address if available, or null",
  "coordinates": {{ "lat": 00.0000, "lng": 00.0000 }},
  "confidence": "high|medium|low",
  "reasoning": "Brief explanation of how location was determined"
}}

If coordinates cannot be determined with reasonable confidence, set coordinates to null.
For well-known places, use your knowledge to provide coordinates."""


def geocode_from_content(
    db: Session,
    url: str,
    title: str,
    content: str,
    notes: str,
    user_id: str | None,
    location_id: str | None = None,
) -> dict:
    """Resolve a place to {name, address, coordinates, confidence, reasoning}.

    A reply that cannot be parsed gives a low-confidence result with no
    coordinates; it is never retried.
    """
    prompt = GEOCODE_PROMPT.format(
        url=url or "",
        title=title or "",
        content=(content or "")[:2000],
        notes=notes or "",
    )
    result = call_llm(db, prompt, user_id, "geocode", location_id)
    geo = parse_geocoding_response(result.text, fallback_name=title)
    logger.info(f"Geocoded '{title}': confidence={geo['confidence']} coordinates={geo['coordinates']}")
    return geo


TAGS_PROMPT = """Analyze this location and extract relevant tags. Prefer using existing tags when applicable. Return only valid JSON.

Location: {name}
Description: {description}
User Notes: {transcription}

Existing tags by category:
{vocabulary}

Categories: place_type, ambience, timing, feature, cuisine, activity

Return JSON in this exact format:
{{
  "tags": [
    {{ "name": "tag-name", "category": "category", "existing": true }}
  ]
}}

Guidelines:
- Use lowercase with hyphens for tag names
- Mark "existing": true if the tag already exists in the system
- Only create new tags if truly unique and useful
- Extract 3-8 relevant tags"""


def _format_vocabulary(existing_tags: list[dict]) -> str:
    by_category: dict[str, list[str]] = {}
    for tag in existing_tags:
        by_category.setdefault(tag["category"], []).append(tag["name"])
    return "\n".join(f"{category}: {', '.join(names)}" for category, names in by_category.items())


def extract_tags(
    db: Session,
    name: str,
    description: str,
    transcription: str,
    existing_tags: list[dict],
    user_id: str | None,
    location_id: str | None = None,
) -> list[dict]:
    """Suggest 3-8 tags as [{name, category, existing}]; [] when the reply is unusable."""
    prompt = TAGS_PROMPT.format(
        name=name,
        description=description or "",
        transcription=transcription or "",
        vocabulary=_format_vocabulary(existing_tags),
    )
    result = call_llm(db, prompt, user_id, "extract_tags", location_id)
    return parse_tag_response(result.text, {t["name"] for t in existing_tags})


WRITING_PROMPT = """Transform this information into engaging travel writing. Write in the style of a seasoned travel writer - evocative but concise. Return only valid JSON.

Location: {name}
Address: {address}
{voice_note}
Website Information:
{metadata}

Write 2-3 paragraphs that:
- Capture the essence and atmosphere of the place
- Include practical details (address, price range, cuisine type if available)
- Incorporate highlights from reviews if provided
- Use sensory language to bring the place to life
- Include the user's personal observations if they recorded a voice note
- Mention any notable dishes, features, or must-try experiences

Keep it under 250 words.

Return JSON in this exact format:
{{
  "description": "Your polished travel writing here..."
}}"""


def generate_travel_writing(
    db: Session,
    name: str,
    address: str,
    transcription: str,
    url_metadata: str,
    user_id: str | None,
    location_id: str | None = None,
) -> str:
    prompt = WRITING_PROMPT.format(
        name=name,
        address=address or "",
        voice_note=f"User's voice note: {transcription}\n" if transcription else "",
        metadata=url_metadata or "No website content available",
    )
    result = call_llm(db, prompt, user_id, "generate_description", location_id)
    return parse_travel_writing(result.text, transcription or "")


EXTRACT_LOCATIONS_PROMPT = """Extract all locations/places mentioned in this text. Return only valid JSON.

Text:
{text}

Return JSON in this exact format:
{{
  "locations": [
    {{
      "name": "Place name",
      "address": "Address if mentioned, or null",
      "url": "URL if mentioned, or null",
      "notes": "Any notes or descriptions mentioned, or null"
    }}
  ]
}}

Extract all identifiable places, restaurants, hotels, attractions, etc."""


def extract_locations_from_text(db: Session, text: str, user_id: str | None) -> list[dict]:
    """Pull candidate places out of pasted free text (first 5000 chars)."""
    prompt = EXTRACT_LOCATIONS_PROMPT.format(text=text[:5000])
    result = call_llm(db, prompt, user_id, "extract_locations", temperature=0.1)
    return parse_extracted_locations(result.text)
