"""
Profile Merge Engine.

Reconciles a freshly extracted StructuredSummary with an existing contact
profile. Every field class has its own policy, and prior data is never
destroyed: lists are unioned, free-text notes are appended, and work info
or birthdays are only replaced by something more specific.

The engine is a pure function and never fails. Callers persist the
contact only when ``changed`` is True.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from circles.schemas.contact import Profile
from circles.schemas.summary import Birthday, StructuredSummary

# Phrases that tie a job description to an employer.
EMPLOYER_INDICATORS = (
    " at ",
    " for ",
    " company",
    " inc",
    " corp",
    " ltd",
    "works at",
    "job at",
    "employed at",
    "working at",
)

KNOWN_COMPANY_TOKENS = (
    "morgan stanley",
    "goldman sachs",
    "jpmorgan",
    "bank of america",
    "microsoft",
    "apple",
    "google",
    "amazon",
    "meta",
    "tesla",
    "consulting",
    "partners",
    "group",
    "holdings",
    "ventures",
)

CHANGE_OF_STATUS_PHRASES = ("new job", "new role", "started")

# Incoming work info at least this many times longer counts as more specific.
LENGTH_RATIO = 1.5

NOTE_SEPARATOR = ". "

_COMPANY_NAME_RE = re.compile(r"\b(?:at|for)\s+([A-Z][\w&.'-]*(?:\s+[A-Z][\w&.'-]*)*)")


@dataclass
class MergeResult:
    updated: Profile
    changed: bool
    changed_fields: list[str] = field(default_factory=list)


def merge_profile(existing: Profile, incoming: StructuredSummary) -> MergeResult:
    """Merge ``incoming`` into ``existing`` and report what changed."""
    updates: dict[str, object] = {}

    list_sources = (
        ("interests", incoming.interests),
        ("topics_to_avoid", incoming.topics_to_avoid),
        ("religious_events", incoming.religious_events),
    )
    for name, values in list_sources:
        current = getattr(existing, name)
        if not values:
            continue
        merged = merge_list(current, values)
        # Duplicates already stored do not count as a change.
        if len(merged) != len(merge_list(current, ())):
            updates[name] = merged

    if incoming.work_info:
        work_info = merge_work_info(existing.work_info, incoming.work_info)
        if work_info != existing.work_info:
            updates["work_info"] = work_info

    for name in ("family_details", "travel_notes"):
        new_text = getattr(incoming, name)
        if not new_text:
            continue
        current = getattr(existing, name)
        merged_text = append_note(current, new_text)
        if merged_text != current:
            updates[name] = merged_text

    if incoming.birthday is not None:
        birthday = merge_birthday(existing.birthday, incoming.birthday)
        if birthday != existing.birthday:
            updates["birthday"] = birthday

    if not updates:
        return MergeResult(updated=existing, changed=False)
    return MergeResult(
        updated=existing.model_copy(update=updates),
        changed=True,
        changed_fields=sorted(updates),
    )


def merge_list(existing: Sequence[str], new: Sequence[str]) -> list[str]:
    """Case-insensitive union; existing items keep their casing and order."""
    result: list[str] = []
    seen: set[str] = set()

    for item in existing:
        key = item.casefold()
        if key not in seen:
            result.append(item)
            seen.add(key)

    for item in new:
        trimmed = item.strip()
        if not trimmed:
            continue
        key = trimmed.casefold()
        if key not in seen:
            result.append(trimmed)
            seen.add(key)

    return result


def merge_work_info(existing: Optional[str], new: str) -> Optional[str]:
    """Replace existing work info only when the new value is more specific."""
    trimmed = new.strip()
    if not trimmed:
        return existing
    if not existing or not existing.strip():
        return trimmed

    new_lower = trimmed.lower()
    existing_lower = existing.lower()
    if " ".join(new_lower.split()) == " ".join(existing_lower.split()):
        return existing

    if _has_employer_info(new_lower) and not _has_employer_info(existing_lower):
        return trimmed

    company = extract_company_name(trimmed)
    if company and company.lower() not in existing_lower:
        return trimmed

    if len(trimmed) >= len(existing) * LENGTH_RATIO:
        return trimmed

    if any(phrase in new_lower for phrase in CHANGE_OF_STATUS_PHRASES):
        return trimmed

    return existing


def append_note(existing: Optional[str], new: str) -> Optional[str]:
    """Append free text with a period separator, never discarding prior content."""
    trimmed = new.strip()
    if not trimmed:
        return existing
    if not existing or not existing.strip():
        return trimmed
    if trimmed.casefold() in existing.casefold():
        return existing
    return f"{existing}{NOTE_SEPARATOR}{trimmed}"


def merge_birthday(existing: Optional[Birthday], new: Birthday) -> Optional[Birthday]:
    """Adopt when absent; otherwise only a year-bearing date replaces a year-less one."""
    if existing is None:
        return new
    if not existing.year_known and new.year_known:
        return new
    return existing


def extract_company_name(text: str) -> Optional[str]:
    """Return the capitalised name following "at"/"for", if any."""
    found = _COMPANY_NAME_RE.search(text)
    return found.group(1) if found else None


def _has_employer_info(lowered: str) -> bool:
    if any(indicator in lowered for indicator in EMPLOYER_INDICATORS):
        return True
    return any(token in lowered for token in KNOWN_COMPANY_TOKENS)
