"""
Chat-completion request and response types.

Plain value objects for the OpenAI-compatible chat-completion API.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..core.token_counter import TokenUsage

VALID_ROLES = ("system", "user", "assistant")
VALID_IMAGE_DETAILS = ("low", "medium", "high", "auto")

MessageContent = Union[str, List[Dict[str, Any]]]


def text_part(text: str) -> Dict[str, Any]:
    """Build a text content part."""
    return {"type": "text", "text": text}


def image_part(url: str, detail: Optional[str] = None) -> Dict[str, Any]:
    """Build an image content part from a URL or data URI.

    Args:
        url: Image URL or base64 data URI
        detail: Optional vision detail level

    Returns:
        Content part dictionary

    Raises:
        ValueError: If detail is not a supported level
    """
    image_url: Dict[str, Any] = {"url": url}
    if detail is not None:
        if detail not in VALID_IMAGE_DETAILS:
            raise ValueError(f"detail must be one of: {list(VALID_IMAGE_DETAILS)}")
        image_url["detail"] = detail
    return {"type": "image_url", "image_url": image_url}


@dataclass(frozen=True)
class ChatMessage:
    """A single role-tagged chat message."""
    role: str
    content: MessageContent

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"role must be one of: {list(VALID_ROLES)}")

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatCompletionRequest:
    """Chat-completion request payload.

    Optional sampling parameters are left out of the payload when unset so the
    remote API applies its own defaults.
    """
    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None

    def __post_init__(self):
        if not self.model or not self.model.strip():
            raise ValueError("model is required and cannot be empty")
        if not self.messages:
            raise ValueError("messages is required and cannot be empty")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON body sent to the API."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
        }
        optional = {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(frozen=True)
class ChoiceMessage:
    role: str
    content: str


@dataclass(frozen=True)
class ChatChoice:
    """One generated alternative in a chat-completion response."""
    index: int
    message: ChoiceMessage
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class APIErrorDetail:
    """Error object returned by the API in an ``{"error": {...}}`` body."""
    message: Optional[str] = None
    type: Optional[str] = None
    param: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def from_body(cls, body: Any) -> Optional["APIErrorDetail"]:
        """Extract the error object from a decoded response body, if any."""
        if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
            return None
        error = body["error"]
        code = error.get("code")
        return cls(
            message=error.get("message"),
            type=error.get("type"),
            param=error.get("param"),
            code=str(code) if code is not None else None,
        )


@dataclass(frozen=True)
class ChatCompletionResponse:
    """Decoded chat-completion response.

    The decoded body is kept in ``raw`` so callers can return it
    unchanged.
    """
    id: Optional[str]
    model: Optional[str]
    choices: List[ChatChoice]
    usage: Optional[TokenUsage] = None
    object: Optional[str] = None
    created: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def content(self) -> str:
        """Message content of the first choice."""
        if not self.choices:
            return ""
        return self.choices[0].message.content

    @classmethod
    def from_dict(cls, body: Dict[str, Any]) -> "ChatCompletionResponse":
        """Build a response from a decoded JSON body.

        Args:
            body: Decoded response body

        Returns:
            ChatCompletionResponse with typed choices and usage
        """
        choices = []
        for position, choice in enumerate(body.get("choices") or []):
            message = choice.get("message") or {}
            choices.append(ChatChoice(
                index=choice.get("index", position),
                message=ChoiceMessage(
                    role=message.get("role", "assistant"),
                    content=message.get("content") or "",
                ),
                finish_reason=choice.get("finish_reason"),
            ))

        usage = None
        raw_usage = body.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                prompt_tokens=int(raw_usage.get("prompt_tokens") or 0),
                completion_tokens=int(raw_usage.get("completion_tokens") or 0),
            )

        return cls(
            id=body.get("id"),
            model=body.get("model"),
            choices=choices,
            usage=usage,
            object=body.get("object"),
            created=body.get("created"),
            raw=body,
        )
