"""Tests for log correlation and note-text redaction."""

from __future__ import annotations

import unittest
from uuid import uuid4

from circles.logging_config import (
    _inject_correlation_ids,
    _redact_note_text,
    bind_submission,
    submission_id_var,
)


class BindSubmissionTests(unittest.TestCase):
    def test_submission_id_is_scoped_to_the_block(self) -> None:
        submission_id = uuid4()

        with bind_submission(submission_id):
            event = _inject_correlation_ids(None, "info", {"event": "intake_received"})

        self.assertEqual(event["submission_id"], str(submission_id))
        self.assertEqual(submission_id_var.get(), "")

    def test_outside_a_submission_no_id_is_added(self) -> None:
        event = _inject_correlation_ids(None, "info", {"event": "api_request"})

        self.assertNotIn("submission_id", event)


class RedactNoteTextTests(unittest.TestCase):
    def test_note_text_is_reduced_to_its_length(self) -> None:
        event = _redact_note_text(
            None,
            "info",
            {"event": "shelved", "raw_text": "Bob is expecting twins", "narrative": "Twins!"},
        )

        self.assertEqual(event["raw_text"], "<22 chars>")
        self.assertEqual(event["narrative"], "<6 chars>")

    def test_other_fields_are_untouched(self) -> None:
        event = _redact_note_text(None, "info", {"event": "profile_merged", "changed_fields": ["interests"]})

        self.assertEqual(event["changed_fields"], ["interests"])


if __name__ == "__main__":
    unittest.main()
