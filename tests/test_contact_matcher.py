"""Unit tests for contact matching and suggestion ranking."""

from __future__ import annotations

import unittest

from circles.schemas.contact import Contact, Profile
from circles.services.contact_matcher import match, resolve, suggest


class MatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.bob_jones = Contact(name="Bob Jones")
        self.bob = Contact(name="Bob")
        self.alice = Contact(name="Alice Smith")
        self.roster = [self.bob_jones, self.bob, self.alice]

    def test_exact_match_beats_earlier_substring_match(self) -> None:
        self.assertEqual(match("Bob", self.roster), self.bob.id)
        self.assertEqual(match("  bob ", self.roster), self.bob.id)

    def test_substring_in_either_direction(self) -> None:
        self.assertEqual(match("Jones", self.roster), self.bob_jones.id)
        self.assertEqual(match("Alice Smith-Nguyen", [self.alice]), self.alice.id)

    def test_token_overlap(self) -> None:
        self.assertEqual(match("Robert Smith", self.roster), self.alice.id)

    def test_no_candidate_no_match(self) -> None:
        self.assertIsNone(match(None, self.roster))
        self.assertIsNone(match("   ", self.roster))
        self.assertIsNone(match("Zed", self.roster))

    def test_contacts_without_names_are_skipped(self) -> None:
        roster = [Contact(name="  "), Contact(name=None), Contact(name="Ann")]

        self.assertIsNone(match("Zed", roster))
        self.assertEqual(match("Ann", roster), roster[2].id)


class SuggestTests(unittest.TestCase):
    def test_scores_rank_name_then_work_then_interest(self) -> None:
        bob = Contact(name="Bob")
        carol = Contact(name="Carol", profile=Profile(interests=["sailing"]))
        dan = Contact(name="Dan", profile=Profile(work_info="Acme Corp"))
        eve = Contact(name="Eve")

        ranked = suggest("Lunch with bob, talked about Sailing and Acme Corp", [eve, carol, dan, bob])

        self.assertEqual(ranked, [bob.id, dan.id, carol.id])

    def test_ties_keep_roster_order_and_limit_applies(self) -> None:
        roster = [Contact(name=f"Pat {i}", profile=Profile(interests=["chess"])) for i in range(7)]

        ranked = suggest("we played chess", roster)

        self.assertEqual(ranked, [c.id for c in roster[:5]])
        self.assertEqual(suggest("we played chess", roster, limit=2), [roster[0].id, roster[1].id])

    def test_interest_points_add_up(self) -> None:
        one = Contact(name="One", profile=Profile(interests=["jazz"]))
        two = Contact(name="Two", profile=Profile(interests=["jazz", "wine"]))

        self.assertEqual(suggest("jazz and wine night", [one, two]), [two.id, one.id])


class ResolveTests(unittest.TestCase):
    def test_zero_confidence_never_assigns(self) -> None:
        bob = Contact(name="Bob")

        result = resolve("Bob", 0.0, "Bob called", [bob])

        self.assertIsNone(result.contact_id)
        self.assertEqual(result.suggestions, [bob.id])

    def test_confident_match(self) -> None:
        bob = Contact(name="Bob")

        result = resolve("bob", 0.9, "quick chat", [bob])

        self.assertEqual(result.contact_id, bob.id)
        self.assertEqual(result.confidence, 0.9)
        self.assertEqual(result.suggestions, [])


if __name__ == "__main__":
    unittest.main()
