"""
SDK for ForexRadar.

Chat-completion clients used to request chart analyses.
"""

from .deepseek_client import (
    AnalysisAPIError,
    AuthenticationFailedError,
    DeepSeekClient,
    EmptyAnalysisError,
    InvalidRequestError,
    InvalidResponseError,
    RetriesExhaustedError,
)
from .openrouter_client import OpenRouterClient

__all__ = [
    "AnalysisAPIError",
    "AuthenticationFailedError",
    "DeepSeekClient",
    "EmptyAnalysisError",
    "InvalidRequestError",
    "InvalidResponseError",
    "OpenRouterClient",
    "RetriesExhaustedError",
]
