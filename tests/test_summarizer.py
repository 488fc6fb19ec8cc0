"""Tests for the summarizer HTTP adapters and their error mapping."""

from __future__ import annotations

import json
import unittest

import httpx

from circles.config import Settings
from circles.errors import (
    CredentialMissing,
    HttpError,
    InvalidResponse,
    NoContentExtracted,
    TransportError,
    is_connectivity_error,
)
from circles.schemas.contact import Contact, Profile
from circles.services.summarizer import (
    BackendSummarizer,
    GeminiSummarizer,
    build_detection_prompt,
    build_summarizer,
)


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class GeminiSummarizerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []

    def _summarizer(self, handler, api_key: str = "gemini-key") -> GeminiSummarizer:
        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        return GeminiSummarizer(api_key=api_key, transport=httpx.MockTransport(recording))

    async def test_returns_first_candidate_text(self) -> None:
        summarizer = self._summarizer(lambda r: httpx.Response(200, json=gemini_reply('{"summary": "hi"}')))

        text = await summarizer.summarize("We met for coffee", contact_name="Bob")

        self.assertEqual(text, '{"summary": "hi"}')
        request = self.requests[0]
        self.assertTrue(request.url.path.endswith("/gemini-2.5-flash:generateContent"))
        self.assertEqual(request.url.params["key"], "gemini-key")
        body = json.loads(request.content)
        self.assertEqual(body["generationConfig"]["temperature"], 0.7)
        self.assertEqual(body["generationConfig"]["maxOutputTokens"], 1024)
        prompt = body["contents"][0]["parts"][0]["text"]
        self.assertIn("voice note transcription for Bob", prompt)
        self.assertIn("We met for coffee", prompt)

    async def test_gift_ideas_use_their_own_generation_config(self) -> None:
        summarizer = self._summarizer(lambda r: httpx.Response(200, json=gemini_reply("1. Book")))
        contact = Contact(name="Ann", profile=Profile(interests=["poetry"]))

        await summarizer.generate_gift_ideas(contact, budget="$50")

        body = json.loads(self.requests[0].content)
        self.assertEqual(body["generationConfig"]["temperature"], 0.8)
        self.assertEqual(body["generationConfig"]["maxOutputTokens"], 512)
        prompt = body["contents"][0]["parts"][0]["text"]
        self.assertIn("within a $50 budget", prompt)
        self.assertIn("Interests: poetry", prompt)

    async def test_missing_key_fails_before_any_request(self) -> None:
        summarizer = self._summarizer(lambda r: httpx.Response(200), api_key="")

        with self.assertRaises(CredentialMissing):
            await summarizer.summarize("text")
        self.assertEqual(self.requests, [])

    async def test_http_status_errors_are_not_connectivity_errors(self) -> None:
        summarizer = self._summarizer(lambda r: httpx.Response(503, text="overloaded"))

        with self.assertRaises(HttpError) as caught:
            await summarizer.summarize("text")

        self.assertEqual(caught.exception.status_code, 503)
        self.assertEqual(caught.exception.body, "overloaded")
        self.assertFalse(is_connectivity_error(caught.exception))

    async def test_connect_failures_are_connectivity_errors(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(TransportError) as caught:
            await self._summarizer(refuse).summarize("text")

        self.assertTrue(is_connectivity_error(caught.exception))

    async def test_timeouts_are_connectivity_errors(self) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with self.assertRaises(TransportError) as caught:
            await self._summarizer(slow).summarize("text")

        self.assertTrue(caught.exception.offline)

    async def test_undecodable_envelope(self) -> None:
        summarizer = self._summarizer(lambda r: httpx.Response(200, text="<html>oops</html>"))

        with self.assertRaises(InvalidResponse):
            await summarizer.summarize("text")

    async def test_empty_candidates(self) -> None:
        summarizer = self._summarizer(lambda r: httpx.Response(200, json={"candidates": []}))

        with self.assertRaises(NoContentExtracted):
            await summarizer.summarize("text")


class BackendSummarizerTests(unittest.IsolatedAsyncioTestCase):
    async def test_posts_to_backend_with_bearer_key(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text='{"summary": "ok"}')

        summarizer = BackendSummarizer(
            base_url="https://api.circles.test/",
            api_key="backend-key-123",
            transport=httpx.MockTransport(handler),
        )
        bob = Contact(name="Bob")

        text = await summarizer.detect_and_summarize("Lunch with Bob", [bob])

        self.assertEqual(text, '{"summary": "ok"}')
        request = requests[0]
        self.assertEqual(str(request.url), "https://api.circles.test/api/process-screenshot")
        self.assertEqual(request.headers["Authorization"], "Bearer backend-key-123")
        body = json.loads(request.content)
        self.assertEqual(body["text"], "Lunch with Bob")
        self.assertEqual(body["contacts"], [{"name": "Bob", "id": str(bob.id)}])

    async def test_voice_note_body_uses_camel_case(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text="summary text")

        summarizer = BackendSummarizer("https://api.circles.test", "backend-key-123", transport=httpx.MockTransport(handler))

        await summarizer.summarize("transcribed words", contact_name="Ann")

        self.assertEqual(requests[0].url.path, "/api/summarize-voice-note")
        self.assertEqual(
            json.loads(requests[0].content),
            {"transcription": "transcribed words", "contactName": "Ann"},
        )

    async def test_empty_body_is_no_content(self) -> None:
        summarizer = BackendSummarizer(
            "https://api.circles.test",
            "backend-key-123",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="  ")),
        )

        with self.assertRaises(NoContentExtracted):
            await summarizer.summarize("words")


class BuildSummarizerTests(unittest.TestCase):
    def test_prefers_backend_when_configured(self) -> None:
        settings = Settings(backend_base_url="https://api.circles.test", backend_api_key="k" * 12)

        self.assertIsInstance(build_summarizer(settings), BackendSummarizer)

    def test_falls_back_to_gemini(self) -> None:
        settings = Settings(backend_base_url="", backend_api_key="", gemini_api_key="g")

        summarizer = build_summarizer(settings)

        self.assertIsInstance(summarizer, GeminiSummarizer)
        self.assertEqual(summarizer.model, settings.gemini_model)

    def test_detection_prompt_lists_roster(self) -> None:
        prompt = build_detection_prompt("text", [Contact(name="Bob"), Contact(name=None)])

        self.assertIn("- Bob\n- Unknown", prompt)
        self.assertIn("No contacts available", build_detection_prompt("text", []))


if __name__ == "__main__":
    unittest.main()
