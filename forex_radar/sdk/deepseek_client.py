"""
DeepSeek chat-completion client.

Delivers a chat-completion request with bounded retries and validates
the shape of the response before handing it back.
"""

import json
import logging
import time
from typing import Dict, Optional

import httpx
import openai
from openai import OpenAI

from .types import APIErrorDetail, ChatCompletionRequest, ChatCompletionResponse

logger = logging.getLogger(__name__)

DEEPSEEK_BASE_URL = "https://api.deepseek.com"
DEFAULT_MAX_ATTEMPTS = 3
RATE_LIMIT_BACKOFF_SECONDS = 2.0
RETRY_BACKOFF_SECONDS = 1.0


class AnalysisAPIError(Exception):
    """Base error for failed chat-completion calls."""
    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def detail(self) -> Optional[APIErrorDetail]:
        """Structured error object from the response body, if present."""
        if not self.body:
            return None
        try:
            return APIErrorDetail.from_body(json.loads(self.body))
        except ValueError:
            return None


class InvalidRequestError(AnalysisAPIError):
    """The API rejected the request as malformed (HTTP 400)."""


class AuthenticationFailedError(AnalysisAPIError):
    """The API rejected the credentials (HTTP 401)."""


class RetriesExhaustedError(AnalysisAPIError):
    """Every attempt failed with a retryable error."""


class InvalidResponseError(AnalysisAPIError):
    """The response body was not valid JSON."""


class EmptyAnalysisError(AnalysisAPIError):
    """The response carried no choices."""


class DeepSeekClient:
    """Chat-completion client with bounded retry and linear backoff.

    Rate-limited calls (HTTP 429) wait ``2s x attempt`` before retrying, other
    transient failures wait ``1s x attempt``. HTTP 400 and 401 are terminal.
    Retries inside the OpenAI SDK are disabled so this loop is the only one.
    """

    base_url = DEEPSEEK_BASE_URL
    default_max_attempts = DEFAULT_MAX_ATTEMPTS
    default_headers: Dict[str, str] = {}

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        max_attempts: Optional[int] = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key sent as a bearer token (required)
            base_url: Override for the API base URL
            timeout: Per-attempt request timeout in seconds
            max_attempts: Override for the default attempt count

        Raises:
            ValueError: If api_key is missing/empty or max_attempts < 1
        """
        if not api_key or not api_key.strip():
            raise ValueError("api_key is required and cannot be empty")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.base_url = base_url or self.base_url
        self.max_attempts = max_attempts or self.default_max_attempts
        self.client = OpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
            default_headers=self.default_headers or None,
        )

    def make_request(
        self,
        request: ChatCompletionRequest,
        max_attempts: Optional[int] = None,
    ) -> ChatCompletionResponse:
        """Send a chat-completion request, retrying transient failures.

        Args:
            request: Chat-completion request payload
            max_attempts: Attempt cap for this call (defaults to the client's)

        Returns:
            Decoded response with at least one choice

        Raises:
            InvalidRequestError: On HTTP 400, without retrying
            AuthenticationFailedError: On HTTP 401, without retrying
            RetriesExhaustedError: When every attempt failed
            InvalidResponseError: If the success body is not JSON
            EmptyAnalysisError: If the success body has no choices
        """
        attempts_allowed = max_attempts or self.max_attempts
        payload = request.to_payload()
        last_status: Optional[int] = None
        last_body: Optional[str] = None

        for attempt in range(1, attempts_allowed + 1):
            logger.info("API call attempt %d/%d (model=%s)", attempt, attempts_allowed, request.model)
            try:
                raw_response = self.client.chat.completions.with_raw_response.create(**payload)
            except openai.BadRequestError as e:
                body = _error_body(e)
                logger.error("API rejected request (400): %s", body)
                raise InvalidRequestError(f"Invalid request: {body}", status=400, body=body) from e
            except openai.AuthenticationError as e:
                logger.error("API authentication failed (401)")
                raise AuthenticationFailedError(
                    "Authentication failed. Please check API key.",
                    status=401,
                    body=_error_body(e),
                ) from e
            except openai.APIStatusError as e:
                last_status = e.status_code
                last_body = _error_body(e)
                logger.warning(
                    "API call failed (attempt %d): %s %s",
                    attempt, last_status, last_body[:200],
                )
                if isinstance(e, openai.RateLimitError):
                    delay = RATE_LIMIT_BACKOFF_SECONDS * attempt
                else:
                    delay = RETRY_BACKOFF_SECONDS * attempt
            except openai.APIConnectionError as e:
                last_status = None
                last_body = str(e)
                logger.warning("API call error (attempt %d): %s", attempt, e)
                delay = RETRY_BACKOFF_SECONDS * attempt
            else:
                logger.info("API call successful")
                return _parse_response(raw_response.http_response.text)

            if attempt < attempts_allowed:
                logger.info("Waiting %.1fs before retry", delay)
                time.sleep(delay)

        status_text = last_status if last_status is not None else "no response"
        raise RetriesExhaustedError(
            f"API call failed after {attempts_allowed} attempts: {status_text} - {last_body}",
            status=last_status,
            body=last_body,
        )


def _error_body(error: openai.APIStatusError) -> str:
    """Response text of a failed call, falling back to the error message."""
    try:
        text = error.response.text
    except httpx.ResponseNotRead:
        text = ""
    return text or str(error)


def _parse_response(text: str) -> ChatCompletionResponse:
    """Decode and validate a successful response body."""
    logger.debug("Response received, length: %d", len(text))
    try:
        body = json.loads(text)
    except ValueError as e:
        logger.error("Failed to parse API response: %s", text[:500])
        raise InvalidResponseError("Invalid response format from AI API", body=text) from e

    if not isinstance(body, dict) or not _has_valid_choices(body.get("choices")):
        logger.error("Response carried no usable choices: %s", text[:500])
        raise EmptyAnalysisError("No analysis content received from AI", body=text)

    return ChatCompletionResponse.from_dict(body)


def _has_valid_choices(choices) -> bool:
    """Non-empty list of choices, each with a message holding text content."""
    if not isinstance(choices, list) or not choices:
        return False
    for choice in choices:
        if not isinstance(choice, dict):
            return False
        message = choice.get("message")
        if not isinstance(message, dict):
            return False
        content = message.get("content")
        if content is not None and not isinstance(content, str):
            return False
    return True
