"""
Summarizer adapters.

Two ways to reach the language model, both returning the raw response
text for the ResponseParser:

- ``BackendSummarizer`` calls the Circles backend, which proxies Gemini
  and keeps the model key off the device.
- ``GeminiSummarizer`` calls the Gemini ``generateContent`` API directly.

Transport failures are mapped onto the intake error taxonomy here, so
the orchestrator only has to ask ``is_connectivity_error``.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from circles.config import Settings, get_settings
from circles.errors import (
    CredentialMissing,
    HttpError,
    InvalidResponse,
    NoContentExtracted,
    TransportError,
)
from circles.logging_config import get_logger
from circles.schemas.contact import Contact
from circles.services.interfaces import Summarizer

logger = get_logger(__name__)


SUMMARIZATION_PROMPT = """Analyze the following voice note transcription{name_context} and extract all relevant information about this person.

Extract and provide:
1. A concise summary (2-3 sentences)
2. Interests or hobbies mentioned
3. Events or activities mentioned
4. Important dates mentioned (extract actual dates if possible)
5. Work/job information (extract company name and job title if mentioned - examples: "Software Engineer at Apple", "works at Morgan Stanley", "new job at Google")
6. Topics to avoid or sensitive subjects
7. Family details (children, spouse, family structure)
8. Travel preferences or notes
9. Religious or cultural events/holidays
10. Birthday (if mentioned with context)

Format your response as JSON with this structure:
{{
  "summary": "Brief summary of the conversation",
  "interests": ["interest1", "interest2"],
  "events": ["event1", "event2"],
  "dates": ["2024-12-25", "2024-01-15"],
  "workInfo": "Job title and company name if mentioned",
  "topicsToAvoid": ["topic1", "topic2"],
  "familyDetails": "Family information if mentioned",
  "travelNotes": "Travel preferences or notes",
  "religiousEvents": ["event1", "event2"],
  "birthday": "YYYY-MM-DD, --MM-DD if the year is unknown, or null"
}}

Rules:
- If no information is found for a category, use null (for strings) or empty array [] (for arrays)
- For dates, use ISO 8601 format (YYYY-MM-DD)
- Only extract information explicitly mentioned or clearly implied
- Be specific: "Software Engineer at Apple" not just "Engineer"
- For birthday, only extract if there's clear context (e.g., "their birthday is...", "born on...")

Transcription:
{text}"""

DETECTION_PROMPT = """Analyze the following text and:
1. Detect which contact (if any) this text is about from this list:
{contact_list}

2. Generate a summary and extract structured data (same format as voice notes)

3. Provide a confidence score (0.0 to 1.0) for the contact match

Format your response as JSON:
{{
  "detectedContactName": "Name of contact or null",
  "confidence": 0.85,
  "summary": "Brief summary of the conversation",
  "interests": ["interest1", "interest2"],
  "events": ["event1", "event2"],
  "dates": ["2024-12-25"],
  "workInfo": "Job title and company if mentioned",
  "topicsToAvoid": ["topic1"],
  "familyDetails": "Family information if mentioned",
  "travelNotes": "Travel preferences or notes",
  "religiousEvents": ["event1"],
  "birthday": "YYYY-MM-DD or null"
}}

Text to analyze:
{text}"""


# -- Typed request / response bodies --


class GenerationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    temperature: float = 0.7
    top_k: int = Field(default=40, alias="topK")
    top_p: float = Field(default=0.95, alias="topP")
    max_output_tokens: int = Field(default=1024, alias="maxOutputTokens")


class GeminiPart(BaseModel):
    text: str = ""


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contents: list[GeminiContent]
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig, alias="generationConfig")


class GeminiCandidate(BaseModel):
    content: GeminiContent = Field(default_factory=GeminiContent)


class GeminiResponse(BaseModel):
    candidates: list[GeminiCandidate] = Field(default_factory=list)

    def first_text(self) -> str:
        for candidate in self.candidates:
            for part in candidate.content.parts:
                if part.text.strip():
                    return part.text
        return ""


class BackendContactRef(BaseModel):
    name: str
    id: str


class SummarizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcription: str
    contact_name: Optional[str] = Field(default=None, alias="contactName")


class ProcessTextRequest(BaseModel):
    text: str
    contacts: list[BackendContactRef] = Field(default_factory=list)


class GiftIdeasRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contact_name: str = Field(alias="contactName")
    interests: list[str] = Field(default_factory=list)
    budget: Optional[str] = None


# -- Prompt builders --


def build_summarization_prompt(text: str, contact_name: Optional[str] = None) -> str:
    name_context = f" for {contact_name}" if contact_name else ""
    return SUMMARIZATION_PROMPT.format(name_context=name_context, text=text)


def build_detection_prompt(text: str, roster: Sequence[Contact]) -> str:
    contact_list = "\n".join(f"- {contact.name or 'Unknown'}" for contact in roster)
    return DETECTION_PROMPT.format(
        contact_list=contact_list or "No contacts available",
        text=text,
    )


def build_gift_ideas_prompt(contact: Contact, budget: Optional[str] = None) -> str:
    prompt = "Generate 5-7 thoughtful gift ideas"
    if budget:
        prompt += f" within a {budget} budget"
    prompt += f" for {contact.name or 'this person'}"

    details: list[str] = []
    if contact.profile.interests:
        details.append(f"Interests: {', '.join(contact.profile.interests)}")
    if contact.profile.work_info:
        details.append(f"Work: {contact.profile.work_info}")
    if details:
        prompt += "\n\nContext:\n" + "\n".join(details)

    prompt += "\n\nProvide gift ideas as a simple list, one per line, without numbering or bullets."
    return prompt


# -- Adapters --


class _HttpSummarizer:
    """Shared httpx plumbing and error mapping."""

    def __init__(
        self,
        timeout_seconds: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._transport = transport

    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        *,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"Content-Type": "application/json", **(headers or {})},
                    params=params,
                )
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            logger.warning("summarizer_unreachable", url=url, error=str(e))
            raise TransportError(f"AI service unreachable: {e}", offline=True) from e
        except httpx.TransportError as e:
            logger.error("summarizer_transport_error", url=url, error=str(e))
            raise TransportError(f"AI request failed: {e}") from e

        logger.info("summarizer_response", url=url, status=response.status_code, size=len(response.content))
        if not response.is_success:
            logger.error("summarizer_http_error", status=response.status_code, body=response.text[:500])
            raise HttpError(response.status_code, response.text)
        return response


class GeminiSummarizer(_HttpSummarizer):
    """Direct Gemini ``generateContent`` client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta/models",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout_seconds, transport)
        self.api_key = api_key
        self.model = model
        self._url = f"{base_url.rstrip('/')}/{model}:generateContent"

    async def summarize(self, text: str, contact_name: Optional[str] = None) -> str:
        return await self._generate(build_summarization_prompt(text, contact_name), GenerationConfig())

    async def detect_and_summarize(self, text: str, roster: Sequence[Contact]) -> str:
        return await self._generate(build_detection_prompt(text, roster), GenerationConfig())

    async def generate_gift_ideas(self, contact: Contact, budget: Optional[str] = None) -> str:
        config = GenerationConfig(temperature=0.8, max_output_tokens=512)
        return await self._generate(build_gift_ideas_prompt(contact, budget), config)

    async def _generate(self, prompt: str, config: GenerationConfig) -> str:
        if not self.api_key:
            logger.error("gemini_api_key_missing")
            raise CredentialMissing("AI API key is missing. Please configure GEMINI_API_KEY.")

        request = GeminiRequest(
            contents=[GeminiContent(parts=[GeminiPart(text=prompt)])],
            generation_config=config,
        )
        logger.info("gemini_request", model=self.model, prompt_length=len(prompt))
        response = await self._post(
            self._url,
            request.model_dump(by_alias=True),
            params={"key": self.api_key},
        )

        try:
            decoded = GeminiResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponse("Invalid response from AI service.") from e

        text = decoded.first_text()
        if not text:
            raise NoContentExtracted("No content in AI response.")
        return text


class BackendSummarizer(_HttpSummarizer):
    """Client for the Circles backend's AI endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout_seconds, transport)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def summarize(self, text: str, contact_name: Optional[str] = None) -> str:
        body = SummarizeRequest(transcription=text, contact_name=contact_name)
        return await self._call("/api/summarize-voice-note", body)

    async def detect_and_summarize(self, text: str, roster: Sequence[Contact]) -> str:
        body = ProcessTextRequest(
            text=text,
            contacts=[BackendContactRef(name=c.name or "Unknown", id=str(c.id)) for c in roster],
        )
        return await self._call("/api/process-screenshot", body)

    async def generate_gift_ideas(self, contact: Contact, budget: Optional[str] = None) -> str:
        body = GiftIdeasRequest(
            contact_name=contact.name or "Unknown",
            interests=contact.profile.interests,
            budget=budget,
        )
        return await self._call("/api/generate-gift-ideas", body)

    async def _call(self, path: str, body: BaseModel) -> str:
        if not self.api_key:
            logger.error("backend_api_key_missing")
            raise CredentialMissing("Backend API key is missing. Please configure BACKEND_API_KEY.")

        response = await self._post(
            f"{self.base_url}{path}",
            body.model_dump(by_alias=True),
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        if not response.text.strip():
            raise NoContentExtracted("No content in AI response.")
        return response.text


def build_summarizer(settings: Settings | None = None) -> Summarizer:
    """Prefer the backend when it is configured, else call Gemini directly."""
    settings = settings or get_settings()
    if settings.use_backend:
        logger.info("summarizer_selected", adapter="backend", base_url=settings.backend_base_url)
        return BackendSummarizer(
            base_url=settings.backend_base_url,
            api_key=settings.backend_api_key,
            timeout_seconds=settings.summarizer_timeout_seconds,
        )

    if not settings.gemini_api_key:
        logger.warning("gemini_api_key_not_configured")
    logger.info("summarizer_selected", adapter="gemini", model=settings.gemini_model)
    return GeminiSummarizer(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout_seconds=settings.summarizer_timeout_seconds,
    )
