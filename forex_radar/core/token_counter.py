"""
Token counting and usage tracking.

Holds token counts reported by the chat-completion API and a rough
estimate of the token cost of an inline chart image.
"""

from dataclasses import dataclass

# Roughly one vision token per 750 characters of base64 payload
IMAGE_CHARS_PER_TOKEN = 750


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported for one completion."""
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


def estimate_image_tokens(base64_image: str) -> int:
    """Estimate the prompt tokens an inline base64 image will consume."""
    if not base64_image:
        return 0
    return round(len(base64_image) / IMAGE_CHARS_PER_TOKEN)
