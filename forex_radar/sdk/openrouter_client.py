"""
OpenRouter chat-completion client.

Same request/response handling as the DeepSeek client, pointed at
OpenRouter with its attribution headers.
"""

from .deepseek_client import DeepSeekClient

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterClient(DeepSeekClient):
    """Single-shot OpenRouter client.

    Failures surface on the first attempt unless a caller asks for more.
    """

    base_url = OPENROUTER_BASE_URL
    default_max_attempts = 1
    default_headers = {
        "HTTP-Referer": "https://forexradar7.com",
        "X-Title": "ForexRadar7 Chart Analysis",
    }
