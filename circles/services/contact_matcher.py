"""
Contact Matcher.

Resolves a model-detected contact name to a contact in the roster, and
ranks roster contacts by how strongly a piece of free text mentions them
so unassigned notes can be triaged quickly.
"""

from __future__ import annotations

from typing import Optional, Sequence
from uuid import UUID

from circles.schemas.contact import Contact, MatchResult

NAME_SCORE = 10
INTEREST_SCORE = 3
WORK_SCORE = 5
DEFAULT_SUGGESTION_LIMIT = 5


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def match(candidate_name: Optional[str], roster: Sequence[Contact]) -> Optional[UUID]:
    """
    Find the contact a detected name refers to.

    Rules, first one with a hit wins:
    1. exact (case-insensitive) name equality
    2. substring containment in either direction
    3. token overlap, first contact in roster order
    """
    candidate = _normalize(candidate_name)
    if not candidate:
        return None

    named = [(contact, _normalize(contact.name)) for contact in roster]
    named = [(contact, name) for contact, name in named if name]

    for contact, name in named:
        if name == candidate:
            return contact.id

    for contact, name in named:
        if candidate in name or name in candidate:
            return contact.id

    candidate_tokens = candidate.split()
    for contact, name in named:
        contact_tokens = name.split()
        for word in candidate_tokens:
            if any(token in word or word in token for token in contact_tokens):
                return contact.id

    return None


def suggest(
    free_text: str,
    roster: Sequence[Contact],
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> list[UUID]:
    """Rank contacts mentioned in ``free_text``; zero-score contacts are dropped."""
    text = free_text.lower()
    scored: list[tuple[UUID, int]] = []

    for contact in roster:
        score = 0
        name = _normalize(contact.name)
        if name and name in text:
            score += NAME_SCORE

        for interest in contact.profile.interests:
            lowered = _normalize(interest)
            if lowered and lowered in text:
                score += INTEREST_SCORE

        work = _normalize(contact.profile.work_info)
        if work and work in text:
            score += WORK_SCORE

        if score > 0:
            scored.append((contact.id, score))

    # sorted() is stable, so ties keep roster order.
    scored.sort(key=lambda item: item[1], reverse=True)
    return [contact_id for contact_id, _ in scored[: max(limit, 0)]]


def resolve(
    candidate_name: Optional[str],
    confidence: float,
    free_text: str,
    roster: Sequence[Contact],
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> MatchResult:
    """Combine ``match`` and ``suggest`` into a MatchResult."""
    contact_id = match(candidate_name, roster) if confidence > 0 else None
    return MatchResult(
        contact_id=contact_id,
        confidence=confidence,
        suggestions=suggest(free_text, roster, limit=min(limit, DEFAULT_SUGGESTION_LIMIT)),
    )
