"""Unit tests for the profile merge policies."""

from __future__ import annotations

import unittest
from datetime import date

from circles.schemas.contact import Profile
from circles.schemas.summary import Birthday, StructuredSummary
from circles.services.profile_merge import (
    append_note,
    extract_company_name,
    merge_birthday,
    merge_list,
    merge_profile,
    merge_work_info,
)


def _summary(**fields) -> StructuredSummary:
    return StructuredSummary(narrative=fields.pop("narrative", "A chat."), **fields)


class MergeListTests(unittest.TestCase):
    def test_case_insensitive_union_keeps_existing_casing(self) -> None:
        merged = merge_list(["hiking", "Cooking"], ["cooking", "Hiking", " Chess "])

        self.assertEqual(merged, ["hiking", "Cooking", "Chess"])

    def test_profile_list_merge_reports_change(self) -> None:
        result = merge_profile(
            Profile(interests=["hiking", "Cooking"]),
            _summary(interests=["cooking", "Hiking", "Chess"]),
        )

        self.assertTrue(result.changed)
        self.assertEqual(result.updated.interests, ["hiking", "Cooking", "Chess"])
        self.assertEqual(result.changed_fields, ["interests"])

    def test_only_duplicates_is_no_change(self) -> None:
        existing = Profile(interests=["hiking"])

        result = merge_profile(existing, _summary(interests=["HIKING"]))

        self.assertFalse(result.changed)
        self.assertIs(result.updated, existing)


class MergeIdempotenceTests(unittest.TestCase):
    def test_merging_twice_changes_nothing_more(self) -> None:
        summary = _summary(
            interests=["sailing"],
            topics_to_avoid=["politics"],
            religious_events=["Eid"],
            work_info="Engineer at Google",
            family_details="Has a daughter",
            travel_notes="Visiting Lisbon in June",
            birthday=Birthday(value=date(1988, 5, 3)),
        )
        existing = Profile(interests=["jazz"], work_info="Engineer", family_details="Married")

        first = merge_profile(existing, summary)
        second = merge_profile(first.updated, summary)

        self.assertTrue(first.changed)
        self.assertFalse(second.changed)
        self.assertEqual(second.updated, first.updated)

    def test_duplicates_already_stored_are_not_a_change(self) -> None:
        existing = Profile(interests=["jazz", "Jazz", "chess"])

        result = merge_profile(existing, _summary(interests=["chess"]))

        self.assertFalse(result.changed)
        self.assertEqual(result.updated.interests, ["jazz", "Jazz", "chess"])

    def test_empty_summary_changes_nothing(self) -> None:
        result = merge_profile(Profile(interests=["jazz"]), _summary())

        self.assertFalse(result.changed)
        self.assertEqual(result.changed_fields, [])


class BirthdayMergeTests(unittest.TestCase):
    def test_year_bearing_date_replaces_year_less(self) -> None:
        year_less = Birthday(value=date(1904, 3, 14), year_known=False)
        full = Birthday(value=date(1990, 3, 14))

        self.assertEqual(merge_birthday(year_less, full), full)
        self.assertEqual(merge_birthday(full, year_less), full)
        self.assertEqual(merge_birthday(None, year_less), year_less)

    def test_known_birthday_is_never_overwritten(self) -> None:
        known = Birthday(value=date(1990, 3, 14))

        result = merge_profile(Profile(birthday=known), _summary(birthday=Birthday(value=date(1991, 1, 1))))

        self.assertFalse(result.changed)
        self.assertEqual(result.updated.birthday, known)


class WorkInfoMergeTests(unittest.TestCase):
    def test_adopts_when_existing_blank(self) -> None:
        self.assertEqual(merge_work_info(None, " Nurse "), "Nurse")
        self.assertEqual(merge_work_info("  ", "Nurse"), "Nurse")

    def test_employer_indicator_wins(self) -> None:
        self.assertEqual(merge_work_info("Engineer", "Engineer at Google"), "Engineer at Google")

    def test_new_company_name_wins(self) -> None:
        self.assertEqual(
            merge_work_info("Analyst at Morgan Stanley", "Analyst at Goldman Sachs"),
            "Analyst at Goldman Sachs",
        )

    def test_status_change_phrase_wins(self) -> None:
        self.assertEqual(
            merge_work_info("Product designer at a startup", "new role in design"),
            "new role in design",
        )

    def test_much_longer_description_wins(self) -> None:
        self.assertEqual(merge_work_info("Teacher", "High school chemistry teacher"), "High school chemistry teacher")

    def test_less_specific_value_is_ignored(self) -> None:
        self.assertEqual(merge_work_info("Works at Google", "Senior Engineer"), "Works at Google")

    def test_same_value_ignoring_case_and_spacing_is_kept(self) -> None:
        existing = "Engineer at Google"

        self.assertEqual(merge_work_info(existing, "engineer  at  GOOGLE"), existing)

    def test_company_name_extraction(self) -> None:
        self.assertEqual(extract_company_name("Associate at Bain Capital now"), "Bain Capital")
        self.assertIsNone(extract_company_name("works at a startup"))


class FreeTextMergeTests(unittest.TestCase):
    def test_appends_with_separator(self) -> None:
        self.assertEqual(append_note("Two kids", "Wife is Maria"), "Two kids. Wife is Maria")
        self.assertEqual(append_note(None, "Wife is Maria"), "Wife is Maria")

    def test_already_present_text_is_not_repeated(self) -> None:
        self.assertEqual(append_note("Two kids. Wife is Maria", "wife is maria"), "Two kids. Wife is Maria")

    def test_profile_travel_notes_append(self) -> None:
        result = merge_profile(Profile(travel_notes="Hates red-eyes"), _summary(travel_notes="Loves Japan"))

        self.assertTrue(result.changed)
        self.assertEqual(result.updated.travel_notes, "Hates red-eyes. Loves Japan")
        self.assertEqual(result.changed_fields, ["travel_notes"])


if __name__ == "__main__":
    unittest.main()
