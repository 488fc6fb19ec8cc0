"""
Response Parser.

Turns raw language-model responses into structured summaries. A JSON
object embedded anywhere in the response is preferred; when none
decodes against the expected schema, a line-oriented section scanner
recovers what it can from headed prose. Malformed responses degrade,
they never raise.
"""

from __future__ import annotations

import json
import math
import re
from datetime import date
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from circles.errors import MalformedResponse, NoContentExtracted
from circles.logging_config import get_logger
from circles.schemas.summary import (
    PLACEHOLDER_YEAR,
    Birthday,
    ContactDetection,
    StructuredSummary,
)

logger = get_logger(__name__)

_FULL_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MONTH_DAY_RE = re.compile(r"^(?:--)?(\d{2})-(\d{2})$")
_BULLET_RE = re.compile(r"^\s*(?:[-•*]\s+|\d+[.)]\s+)")
_ORDINAL_RE = re.compile(r"^\d+[.)](?:\s+|$)")
_SENTENCE_END_RE = re.compile(r"[.!?,;]")

# Characters wrapped around header labels by markdown-ish model output.
_DECORATION = " \t#*_>`-•"
_MAX_HEADER_WORDS = 5
_MAX_BARE_HEADER_WORDS = 3
_NULL_NAMES = {"null", "none", "unknown", "n/a"}


# -- Typed payloads --


class _RawSummaryPayload(BaseModel):
    """Expected shape of the JSON object in a summarization response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    summary: str
    interests: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    work_info: Optional[str] = Field(default=None, alias="workInfo")
    topics_to_avoid: Optional[list[str]] = Field(default=None, alias="topicsToAvoid")
    family_details: Optional[str] = Field(default=None, alias="familyDetails")
    travel_notes: Optional[str] = Field(default=None, alias="travelNotes")
    religious_events: Optional[list[str]] = Field(default=None, alias="religiousEvents")
    birthday: Optional[str] = None

    @field_validator(
        "interests", "events", "dates", "topics_to_avoid", "religious_events", mode="before"
    )
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        return value


class _RawDetectionPayload(_RawSummaryPayload):
    """Summary payload plus the detected contact and match confidence."""

    detected_contact_name: Optional[str] = Field(default=None, alias="detectedContactName")
    confidence: float = 0.0


# -- Public entry points --


def parse_summary(raw: str) -> StructuredSummary:
    """Parse a summarization response into a StructuredSummary."""
    text = _require_text(raw)
    try:
        payload, span = _decode_structured(text, _RawSummaryPayload)
    except MalformedResponse as exc:
        logger.debug("structured_decode_failed", reason=str(exc), response_length=len(text))
        return _scan_sections(text)
    return _summary_from_payload(payload, span)


def parse_detection(raw: str) -> ContactDetection:
    """
    Parse a detect-and-summarize response.

    When the JSON path fails the detected name is absent and the
    confidence is 0; the summary still comes from the section scanner.
    """
    text = _require_text(raw)
    try:
        payload, span = _decode_structured(text, _RawDetectionPayload)
    except MalformedResponse as exc:
        logger.debug("structured_decode_failed", reason=str(exc), response_length=len(text))
        return ContactDetection(summary=_scan_sections(text))

    return ContactDetection(
        detected_contact_name=_clean_name(payload.detected_contact_name),
        confidence=_clamp_confidence(payload.confidence),
        summary=_summary_from_payload(payload, span),
    )


def parse_gift_ideas(raw: str) -> list[str]:
    """Extract a flat list of ideas from free-form model output."""
    structured = _decode_idea_list(raw)
    if structured is not None:
        return structured

    ideas: list[str] = []
    for line in raw.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(("#", "-", "•", "```")):
            continue
        idea = _ORDINAL_RE.sub("", trimmed, count=1).strip()
        if idea:
            ideas.append(idea)
    return ideas


def parse_full_date(value: str) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` date; anything else yields None."""
    match = _FULL_DATE_RE.match(value.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def parse_birthday(value: str | None) -> Birthday | None:
    """Parse a birthday, accepting ``YYYY-MM-DD`` or a year-less ``--MM-DD``/``MM-DD``."""
    if not value or not value.strip():
        return None
    full = parse_full_date(value)
    if full is not None:
        return Birthday(value=full, year_known=True)
    match = _MONTH_DAY_RE.match(value.strip())
    if not match:
        return None
    try:
        month_day = date(PLACEHOLDER_YEAR, int(match.group(1)), int(match.group(2)))
    except ValueError:
        return None
    return Birthday(value=month_day, year_known=False)


# -- Structured phase --


def _require_text(raw: str | None) -> str:
    if raw is None or not raw.strip():
        raise NoContentExtracted("model response contained no text")
    return raw


def _decode_structured(
    text: str, model: type[_RawSummaryPayload]
) -> tuple[_RawSummaryPayload, str]:
    """Return the first object span that validates, with the span itself."""
    for candidate in _iter_object_spans(text):
        try:
            decoded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(decoded, dict):
            continue
        try:
            return model.model_validate(decoded), candidate
        except ValidationError:
            continue
    raise MalformedResponse("no JSON object in the response matched the summary schema")


def _iter_object_spans(text: str) -> Iterator[str]:
    """Yield balanced ``{...}`` spans, one per opening brace, left to right."""
    balanced_any = False
    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end is not None:
            balanced_any = True
            yield text[start : end + 1]
        start = text.find("{", start + 1)

    if not balanced_any:
        first, last = text.find("{"), text.rfind("}")
        if first != -1 and last > first:
            yield text[first : last + 1]


def _matching_brace(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def _summary_from_payload(payload: _RawSummaryPayload, span: str) -> StructuredSummary:
    dates = [parsed for parsed in (parse_full_date(value) for value in payload.dates) if parsed]
    return StructuredSummary(
        narrative=payload.summary.strip() or span.strip(),
        interests=payload.interests,
        events=payload.events,
        dates=dates,
        work_info=payload.work_info,
        topics_to_avoid=payload.topics_to_avoid,
        family_details=payload.family_details,
        travel_notes=payload.travel_notes,
        religious_events=payload.religious_events,
        birthday=parse_birthday(payload.birthday),
    )


def _clean_name(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.lower() in _NULL_NAMES:
        return None
    return cleaned


def _clamp_confidence(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def _decode_idea_list(raw: str) -> list[str] | None:
    cleaned = re.sub(r"```(?:json)?", "", raw).strip()
    if not cleaned.startswith(("[", "{")):
        return None
    try:
        decoded = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if isinstance(decoded, dict):
        decoded = decoded.get("ideas")
    if not isinstance(decoded, list):
        return None
    return [str(item).strip() for item in decoded if item is not None and str(item).strip()]


# -- Section-scanner fallback --


def _section_for_label(label: str) -> str | None:
    lowered = label.lower()
    if "summary" in lowered:
        return "summary"
    if "interest" in lowered:
        return "interests"
    if "event" in lowered and "religious" not in lowered:
        return "events"
    if "date" in lowered or "birthday" in lowered:
        return "dates"
    if "work" in lowered or "job" in lowered:
        return "work"
    if "topic" in lowered or "avoid" in lowered:
        return "topics"
    if "family" in lowered:
        return "family"
    if "travel" in lowered:
        return "travel"
    if "religious" in lowered:
        return "religious"
    return None


def _is_bare_label(text: str) -> bool:
    """A short line with no sentence punctuation, such as ``Interests``."""
    return len(text.split()) <= _MAX_BARE_HEADER_WORDS and not _SENTENCE_END_RE.search(text)


def _match_header(line: str) -> tuple[str, str, str] | None:
    """Return (section, label, inline content) if ``line`` is a section header."""
    bullet = _BULLET_RE.match(line)
    body = (line[bullet.end():] if bullet else line).strip()
    emphasized = body.startswith(("#", "**", "__"))
    # Bulleted lines are list content unless the label is emphasized.
    if bullet and not emphasized:
        return None

    core = body.strip(_DECORATION)
    if ":" in core:
        label, _, inline = core.partition(":")
        inline = inline.strip(_DECORATION)
    elif emphasized or _is_bare_label(core):
        label, inline = core, ""
    else:
        return None

    label = label.strip(_DECORATION)
    if not label or len(label.split()) > _MAX_HEADER_WORDS:
        return None
    section = _section_for_label(label)
    if section is None:
        return None
    return section, label, inline


def _strip_bullet(text: str) -> str:
    return _BULLET_RE.sub("", text, count=1).strip()


def _scan_sections(raw: str) -> StructuredSummary:
    narrative_parts: list[str] = []
    lists: dict[str, list[str]] = {
        "interests": [],
        "events": [],
        "topics": [],
        "religious": [],
    }
    texts: dict[str, list[str]] = {"work": [], "family": [], "travel": []}
    dates: list[date] = []
    birthday: Birthday | None = None

    section: str | None = None
    birthday_header = False

    for line in raw.splitlines():
        header = _match_header(line)
        if header is not None:
            section, label, content = header
            birthday_header = "birthday" in label.lower()
            if not content:
                continue
        else:
            content = line.strip()
            if not content or section is None:
                continue

        if section == "summary":
            narrative_parts.append(content)
        elif section in lists:
            item = _strip_bullet(content)
            if item:
                lists[section].append(item)
        elif section in texts:
            texts[section].append(_strip_bullet(content))
        elif section == "dates":
            item = _strip_bullet(content)
            if birthday_header:
                birthday = parse_birthday(item) or birthday
            else:
                parsed = parse_full_date(item)
                if parsed is not None:
                    dates.append(parsed)

    narrative = " ".join(narrative_parts).strip()
    if not narrative and not lists["interests"] and not lists["events"]:
        narrative = raw.strip()

    return StructuredSummary(
        narrative=narrative or raw.strip(),
        interests=lists["interests"],
        events=lists["events"],
        dates=dates,
        work_info=" ".join(texts["work"]),
        topics_to_avoid=lists["topics"],
        family_details=" ".join(texts["family"]),
        travel_notes=" ".join(texts["travel"]),
        religious_events=lists["religious"],
        birthday=birthday,
    )
