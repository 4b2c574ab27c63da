import asyncio
import base64
import binascii
import hashlib
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

import groq
from groq import AsyncGroq
from pydantic import BaseModel, ValidationError

import config
from prompts import extraction_messages, guide_messages, laytime_messages, summary_messages
from schemas import (
    ExtractionResult,
    GuideResponse,
    LaytimeJudgement,
    PortEvent,
    SummaryResponse,
)
from utils.docx_parser import DocxParser
from utils.ocr_module import OCRProcessor
from utils.pdf_parser import PDFParser

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


# --------------------------
# Errors
# --------------------------
class SofPipelineError(Exception):
    """Base error; message is safe to show to the user."""
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class DocumentParseError(SofPipelineError):
    status_code = 400


class MissingApiKeyError(SofPipelineError):
    status_code = 503


class GatewayError(SofPipelineError):
    status_code = 502


class QuotaExceededError(GatewayError):
    status_code = 429

    def __init__(self, message: str = "The AI service quota has been exceeded. Please wait a minute and try again.",
                 details: Optional[Any] = None):
        super().__init__(message, details)


class InvalidResponseError(GatewayError):
    status_code = 502


# --------------------------
# Data structures
# --------------------------
@dataclass
class IngestedDoc:
    filename: str
    pages: List[str]
    combined_text: str
    digest: str = ""


@dataclass
class ProcessedDocument:
    doc: IngestedDoc
    extraction: ExtractionResult
    warnings: List[str] = field(default_factory=list)


# --------------------------
# Public: file ingestion
# --------------------------
SUPPORTED_EXTENSIONS = {".pdf", ".docx", ".txt", ".png", ".jpg", ".jpeg"}

MIME_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}

_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^;,]*)*;base64,(?P<payload>.*)$", re.DOTALL)


def document_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a data:<mime>;base64,<bytes> URI into its MIME type and decoded bytes."""
    match = _DATA_URI.match(uri.strip()) if uri else None
    if not match:
        raise DocumentParseError("Expected a data URI of the form data:<mime>;base64,<bytes>.")
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DocumentParseError("The data URI does not contain valid base64.") from e
    return match.group("mime").lower(), data


def document_to_text(data: bytes, filename: str) -> IngestedDoc:
    ext = os.path.splitext(filename)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise DocumentParseError(
            f"Unsupported file type: {ext or 'unknown'}. Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    logger.info(f"Processing file: {filename} (type: {ext}, size: {len(data)} bytes)")

    pages: List[str] = []
    if ext == ".pdf":
        pages = PDFParser().extract_pages(data)
    elif ext == ".docx":
        text = DocxParser().extract_text(data)
        pages = [text] if text else []
    elif ext == ".txt":
        text = data.decode("utf-8", errors="ignore")
        pages = [text] if text.strip() else []
    else:
        text = OCRProcessor().extract_text(data)
        pages = [text] if text else []

    valid_pages = [p for p in pages if p and p.strip()]
    if not valid_pages:
        raise DocumentParseError(f"No text could be extracted from {filename}.")

    combined = "\n\n".join(valid_pages)
    logger.info(f"Final combined text for {filename}: {len(combined)} characters")
    return IngestedDoc(filename=filename, pages=valid_pages, combined_text=combined, digest=document_digest(data))


def data_uri_to_text(uri: str) -> IngestedDoc:
    mime, data = decode_data_uri(uri)
    ext = MIME_EXTENSIONS.get(mime)
    if ext is None:
        raise DocumentParseError(f"Unsupported document type: {mime or 'unknown'}.")
    return document_to_text(data, f"document{ext}")


# --------------------------
# LLM gateway
# --------------------------
_QUOTA_MARKERS = ("rate_limit_exceeded", "rate limit", "quota", "429", "resource_exhausted", "too many requests")


def _is_quota_message(message: str) -> bool:
    message = message.lower()
    return any(marker in message for marker in _QUOTA_MARKERS)


def get_client() -> AsyncGroq:
    if not config.GROQ_API_KEY:
        raise MissingApiKeyError("GROQ_API_KEY is not configured. Please set the API key in the environment.")
    # Failures are surfaced to the user, never retried here
    return AsyncGroq(api_key=config.GROQ_API_KEY, timeout=config.LLM_TIMEOUT_SECONDS, max_retries=0)


def parse_json_payload(content: str) -> Dict[str, Any]:
    """Pull the JSON object out of a model reply, tolerating markdown code fences."""
    content = (content or "").strip()
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", content)
    if fenced:
        content = fenced.group(1)
    elif not content.startswith("{"):
        braces = re.search(r"\{[\s\S]*\}", content)
        if braces:
            content = braces.group(0)

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise InvalidResponseError("Invalid response from AI. The reply was not valid JSON.", details=str(e)) from e

    if not isinstance(data, dict):
        raise InvalidResponseError("Invalid response from AI. Expected a JSON object.")
    return data


async def _chat_json(messages: List[Dict[str, str]], client: Optional[AsyncGroq] = None,
                     max_tokens: Optional[int] = None) -> Dict[str, Any]:
    client = client or get_client()
    request = client.chat.completions.create(
        model=config.GROQ_MODEL,
        temperature=0.0,
        max_tokens=max_tokens or config.LLM_MAX_TOKENS,
        messages=messages,
        response_format={"type": "json_object"},
    )
    try:
        resp = await asyncio.wait_for(request, timeout=config.LLM_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        raise GatewayError("The AI service did not respond in time. Please try again.") from e
    except groq.RateLimitError as e:
        raise QuotaExceededError(details=str(e)) from e
    except groq.APIStatusError as e:
        if e.status_code == 429 or _is_quota_message(str(e)):
            raise QuotaExceededError(details=str(e)) from e
        raise GatewayError(f"The AI service returned an error ({e.status_code}). Please try again.", details=str(e)) from e
    except groq.APIError as e:
        if _is_quota_message(str(e)):
            raise QuotaExceededError(details=str(e)) from e
        raise GatewayError("Could not reach the AI service. Please try again.", details=str(e)) from e

    content = resp.choices[0].message.content if resp.choices else ""
    return parse_json_payload(content)


def _validate(model_cls: Type[M], payload: Dict[str, Any], message: str) -> M:
    try:
        return model_cls.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"AI response failed validation for {model_cls.__name__}: {e.error_count()} error(s)")
        raise InvalidResponseError(f"Invalid response from AI. {message}", details=str(e)) from e


def _allowed_laytime_text(days: Optional[float] = None) -> str:
    days = config.DEFAULT_ALLOWED_LAYTIME_DAYS if days is None else days
    return f"{days:g} days"


def _events_payload(events: List[PortEvent]) -> List[Dict[str, Any]]:
    return [event.model_dump(by_alias=True) for event in events]


async def extract_port_operation_events(sof_content: str, client: Optional[AsyncGroq] = None,
                                        allowed_laytime_days: Optional[float] = None) -> ExtractionResult:
    """
    Send SoF text to the model and validate the structured reply

    One call returns the vessel name, the event list, a laytime judgement and
    an insight summary.

    Raises:
        DocumentParseError: the document text is empty
        InvalidResponseError: vessel name or events are missing, or the JSON is malformed
        QuotaExceededError / GatewayError: the model call failed
    """
    if not sof_content or not sof_content.strip():
        raise DocumentParseError("The document is empty.")

    snippet = sof_content
    if len(snippet) > config.MAX_DOCUMENT_CHARS:
        logger.warning(f"Document truncated from {len(snippet)} to {config.MAX_DOCUMENT_CHARS} characters")
        snippet = snippet[:config.MAX_DOCUMENT_CHARS]

    payload = await _chat_json(extraction_messages(snippet, _allowed_laytime_text(allowed_laytime_days)), client)
    result = _validate(ExtractionResult, payload, "Missing events or vessel name.")
    logger.info(f"Extracted {len(result.events)} events for vessel {result.vessel_name}")
    return result


async def calculate_laytime(events: List[PortEvent], client: Optional[AsyncGroq] = None,
                            allowed_laytime_days: Optional[float] = None) -> LaytimeJudgement:
    if not events:
        raise DocumentParseError("No events available for laytime calculation.")
    payload = await _chat_json(laytime_messages(_events_payload(events), _allowed_laytime_text(allowed_laytime_days)), client)
    return _validate(LaytimeJudgement, payload, "Missing laytime fields.")


async def summarize_port_events(events: List[PortEvent], client: Optional[AsyncGroq] = None) -> str:
    if not events:
        raise DocumentParseError("No events available to summarize.")
    payload = await _chat_json(summary_messages(_events_payload(events)), client, max_tokens=1024)
    return _validate(SummaryResponse, payload, "Missing summary.").summary


async def guide_new_users(query: str, extraction: Optional[ExtractionResult] = None,
                          client: Optional[AsyncGroq] = None) -> str:
    messages = guide_messages(
        query,
        vessel_name=extraction.vessel_name if extraction else None,
        events_summary=extraction.events_summary if extraction else None,
    )
    payload = await _chat_json(messages, client, max_tokens=1024)
    return _validate(GuideResponse, payload, "Missing assistant response.").response


# --------------------------
# Single-flight extraction
# --------------------------
class SingleFlight:
    """Collapses concurrent calls that share a key onto one in-flight task."""

    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.info(f"Joining in-flight extraction {key[:12]}")
        # a cancelled waiter must not cancel the shared call
        return await asyncio.shield(task)


_extraction_flight = SingleFlight()


async def extract_text_once(sof_content: str, client: Optional[AsyncGroq] = None,
                            flight: Optional[SingleFlight] = None) -> ExtractionResult:
    """extract_port_operation_events, sharing the call with any identical request already in flight."""
    flight = flight or _extraction_flight
    key = "text:" + document_digest((sof_content or "").encode("utf-8"))
    return await flight.run(key, lambda: extract_port_operation_events(sof_content, client=client))


async def process_document(data: bytes, filename: str, client: Optional[AsyncGroq] = None,
                           flight: Optional[SingleFlight] = None) -> ProcessedDocument:
    """Document bytes -> text -> validated extraction, one in-flight run per distinct document."""
    flight = flight or _extraction_flight

    async def _run() -> ProcessedDocument:
        doc = await asyncio.to_thread(document_to_text, data, filename)
        warnings = []
        if len(doc.combined_text) > config.MAX_DOCUMENT_CHARS:
            warnings.append(f"Only the first {config.MAX_DOCUMENT_CHARS} characters of the document were analysed.")
        extraction = await extract_port_operation_events(doc.combined_text, client=client)
        return ProcessedDocument(doc=doc, extraction=extraction, warnings=warnings)

    return await flight.run(document_digest(data), _run)
