"""
Chart analysis service.

Turns a chart screenshot into a technical analysis: checks the user's
allowance, validates the image, prompts the model, validates what comes
back, and records the analysis in the usage ledger.

Flow for a single chart:
1. Usage check - refuse before spending an API call
2. Image validation - refuse blank or non-image uploads
3. Chat-completion call - bounded retries live in the client
4. Content validation - refuse answers where the model could not see the chart
5. Ledger write - consumes one unit of the user's allowance
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..sdk.deepseek_client import DeepSeekClient
from ..sdk.types import ChatCompletionRequest, ChatCompletionResponse, ChatMessage, image_part, text_part
from ..storage.models import ChartAnalysisRecord
from ..storage.repository import UsageRepository
from .plans import MAX_MULTI_TIMEFRAME_CHARTS, AnalysisMode, require_mode
from .prompts import (
    build_analysis_prompt,
    build_multi_timeframe_prompt,
    build_price_history_instruction,
    build_price_history_prompt,
    build_user_instruction,
)
from .token_counter import estimate_image_tokens
from .trading_pairs import AUTO_DETECT, format_trading_pair, is_auto_detect
from .usage import ensure_can_analyze
from .validation import validate_analysis_content, validate_image_data

logger = logging.getLogger(__name__)

_PRICE = r"\$?\d[\d,]*(?:\.\d+)?"
_LABEL_END = r"\s*\**\s*:\s*\**\s*"
_ENTRY_RE = re.compile(rf"\bentry(?:\s+(?:zone|trigger|price|level|point))?{_LABEL_END}({_PRICE})", re.IGNORECASE)
_STOP_RE = re.compile(rf"\bstop[\s-]*loss(?:\s+(?:level|price))?{_LABEL_END}({_PRICE})", re.IGNORECASE)
_TARGET_RE = re.compile(
    rf"\b(?:take[\s-]*profit|tp)\s*\d*(?:\s+(?:target|level|price))?{_LABEL_END}({_PRICE})", re.IGNORECASE
)
_DIRECTION_RE = re.compile(rf"\bdirection{_LABEL_END}(buy|sell|long|short|wait)", re.IGNORECASE)

MAX_TAKE_PROFITS = 3
HISTORY_TEMPERATURE = 0.7
HISTORY_MAX_TOKENS = 4000


class ChartValidationError(ValueError):
    """The submitted chart or request parameters are unusable."""


class AnalysisContentError(Exception):
    """The model answered, but not with a usable chart analysis."""


@dataclass(frozen=True)
class ChartInput:
    """One chart image submitted for analysis."""
    base64_image: str
    timeframe: str = ""
    pair_name: str = ""


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar of price history, timestamped in UTC."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None


@dataclass(frozen=True)
class AnalysisResult:
    """Technical analysis of charts or of price history."""
    pair_name: str
    timeframe: str
    market_analysis: str
    overall_sentiment: str
    trend_direction: str
    entry_level: Optional[str] = None
    stop_loss: Optional[str] = None
    take_profits: List[str] = field(default_factory=list)
    model: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    created_at: Optional[datetime] = None
    technique: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data


def detect_sentiment(text: str) -> str:
    """Classify text as bullish, bearish or neutral by keyword balance."""
    lowered = text.lower()
    bullish = lowered.count("bullish") + lowered.count("uptrend")
    bearish = lowered.count("bearish") + lowered.count("downtrend")
    if bullish > bearish:
        return "bullish"
    if bearish > bullish:
        return "bearish"
    return "neutral"


def extract_trade_levels(text: str) -> Dict[str, Any]:
    """Pull entry, stop loss and take-profit prices out of an analysis.

    Best effort: fields the model did not state as ``label: price`` are left
    empty.
    """
    entry = _ENTRY_RE.search(text)
    stop = _STOP_RE.search(text)
    targets: List[str] = []
    for match in _TARGET_RE.finditer(text):
        price = match.group(1)
        if price not in targets:
            targets.append(price)
        if len(targets) == MAX_TAKE_PROFITS:
            break
    return {
        "entry_level": entry.group(1) if entry else None,
        "stop_loss": stop.group(1) if stop else None,
        "take_profits": targets,
    }


def _trend_direction(text: str, fallback: str) -> str:
    match = _DIRECTION_RE.search(text)
    if not match:
        return fallback
    direction = match.group(1).lower()
    if direction in ("buy", "long"):
        return "bullish"
    if direction in ("sell", "short"):
        return "bearish"
    return "neutral"


def build_result(
    response: ChatCompletionResponse,
    pair_name: str,
    timeframe: str,
    created_at: datetime,
    technique: Optional[str] = None,
) -> AnalysisResult:
    """Build an AnalysisResult from a validated completion."""
    content = response.content
    sentiment = detect_sentiment(content)
    return AnalysisResult(
        pair_name=pair_name,
        timeframe=timeframe,
        market_analysis=content,
        overall_sentiment=sentiment,
        trend_direction=_trend_direction(content, sentiment),
        model=response.model,
        usage=response.usage.to_dict() if response.usage else None,
        created_at=created_at,
        technique=technique,
        **extract_trade_levels(content),
    )


class ChartAnalyzer:
    """Runs chart analyses against a chat-completion client.

    When a repository is given, analyses requested for a user are metered:
    limits are checked before the API call and the analysis is recorded after.
    """

    def __init__(
        self,
        client: DeepSeekClient,
        model: str,
        repository: Optional[UsageRepository] = None,
        temperature: float = 0.1,
        max_tokens: int = 2000,
    ):
        """Initialize the analyzer.

        Args:
            client: Chat-completion client
            model: Vision-capable model name (required)
            repository: Optional UsageRepository for metering
            temperature: Sampling temperature for single-chart analysis
            max_tokens: Completion budget for single-chart analysis

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        self.client = client
        self.model = model
        self.repository = repository
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _check_allowance(self, user_id: Optional[str], now: datetime) -> None:
        if user_id and self.repository is not None:
            ensure_can_analyze(self.repository.check_usage_limits(user_id, now))

    def _validate_image(self, base64_image: str) -> int:
        validation = validate_image_data(base64_image)
        if not validation.is_valid:
            raise ChartValidationError(validation.error)
        return validation.image_size

    def _validate_content(self, response: ChatCompletionResponse) -> None:
        validation = validate_analysis_content(response.content)
        if not validation.is_valid:
            raise AnalysisContentError(validation.error)

    def _record(self, user_id: Optional[str], result: AnalysisResult) -> None:
        if user_id and self.repository is not None:
            self.repository.record_analysis(ChartAnalysisRecord(
                user_id=user_id,
                pair_name=result.pair_name,
                timeframe=result.timeframe,
                created_at=result.created_at,
                analysis_data=result.to_dict(),
            ))

    def analyze_chart(
        self,
        base64_image: str,
        pair_name: str = "",
        timeframe: str = "",
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Analyze a single chart screenshot.

        Args:
            base64_image: Chart as a base64 image data URI
            pair_name: Trading pair; empty or AUTO_DETECT lets the model read it
            timeframe: Timeframe; empty or AUTO_DETECT lets the model read it
            user_id: User to meter, if any
            now: Reference time (defaults to now)

        Returns:
            AnalysisResult

        Raises:
            UsageLimitExceeded: If the user has no allowance left
            ChartValidationError: If the image is unusable
            AnalysisAPIError: If the chat-completion call fails
            AnalysisContentError: If the model did not analyze the chart
        """
        now = now or datetime.now(timezone.utc)
        self._check_allowance(user_id, now)
        image_size = self._validate_image(base64_image)

        pair = AUTO_DETECT if is_auto_detect(pair_name) else format_trading_pair(pair_name)
        frame = AUTO_DETECT if is_auto_detect(timeframe) else timeframe

        logger.info(
            "Chart analysis request: pair=%s timeframe=%s image=%dKB est_image_tokens=%d",
            pair, frame, round(image_size / 1024), estimate_image_tokens(base64_image),
        )

        request = ChatCompletionRequest(
            model=self.model,
            messages=[
                ChatMessage(role="system", content=build_analysis_prompt(pair, frame, now)),
                ChatMessage(role="user", content=[
                    text_part(build_user_instruction(pair, frame)),
                    image_part(base64_image, detail="medium"),
                ]),
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        response = self.client.make_request(request)
        self._validate_content(response)

        result = build_result(response, pair, frame, now)
        self._record(user_id, result)
        return result

    def analyze_multi_timeframe(
        self,
        charts: Sequence[ChartInput],
        technique: str = "general",
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Analyze up to three charts of one pair on different timeframes.

        Metered users must be on a plan that includes multi-timeframe analysis.

        Raises:
            ChartValidationError: If no charts, too many charts, or a bad image
            ModeNotAvailable: If the user's plan excludes multi-timeframe analysis
            UsageLimitExceeded: If the user has no allowance left
            AnalysisAPIError: If the chat-completion call fails
            AnalysisContentError: If the model did not analyze the charts
        """
        if not charts:
            raise ChartValidationError("No charts provided for analysis")
        if len(charts) > MAX_MULTI_TIMEFRAME_CHARTS:
            raise ChartValidationError(
                f"At most {MAX_MULTI_TIMEFRAME_CHARTS} charts can be analyzed together"
            )

        now = now or datetime.now(timezone.utc)
        if user_id and self.repository is not None:
            require_mode(self.repository.get_subscription_tier(user_id, now), AnalysisMode.MULTI)
        self._check_allowance(user_id, now)

        for chart in charts:
            self._validate_image(chart.base64_image)

        logger.info("Multi-timeframe analysis request: %d charts, technique=%s", len(charts), technique)

        content = [text_part(build_multi_timeframe_prompt(technique))]
        content.extend(image_part(chart.base64_image, detail="low") for chart in charts)
        request = ChatCompletionRequest(
            model=self.model,
            messages=[ChatMessage(role="user", content=content)],
            max_tokens=1200,
            temperature=0.3,
            top_p=0.9,
        )
        response = self.client.make_request(request)
        self._validate_content(response)

        pair_names = [chart.pair_name for chart in charts if chart.pair_name]
        pair = format_trading_pair(pair_names[0]) if pair_names else AUTO_DETECT
        timeframes = ", ".join(chart.timeframe or AUTO_DETECT for chart in charts)

        result = build_result(response, pair, timeframes, now, technique=technique)
        self._record(user_id, result)
        return result

    def analyze_price_history(
        self,
        candles: Sequence[Candle],
        pair_name: str,
        timeframe: str,
        current_price: Optional[float] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Run a price-action analysis over caller-supplied OHLCV history.

        Candles are sent oldest first. Without an explicit current price the
        close of the latest candle is used.

        Args:
            candles: Price history, in any order
            pair_name: Trading pair
            timeframe: Candle timeframe label, e.g. ``H1``
            current_price: Latest tick price, if known
            user_id: User to meter, if any
            now: Reference time (defaults to now)

        Returns:
            AnalysisResult

        Raises:
            ChartValidationError: If no candles, pair or timeframe are given
            UsageLimitExceeded: If the user has no allowance left
            AnalysisAPIError: If the chat-completion call fails
            AnalysisContentError: If the model returned no analysis
        """
        if not candles:
            raise ChartValidationError("No price history provided for analysis")
        if is_auto_detect(pair_name) or is_auto_detect(timeframe):
            raise ChartValidationError("Trading pair and timeframe are required for price history analysis")

        now = now or datetime.now(timezone.utc)
        self._check_allowance(user_id, now)

        ordered = sorted(candles, key=lambda candle: candle.timestamp)
        if current_price is None:
            current_price = ordered[-1].close
        pair = format_trading_pair(pair_name)

        logger.info(
            "Price history analysis request: pair=%s timeframe=%s candles=%d current_price=%s",
            pair, timeframe, len(ordered), current_price,
        )

        request = ChatCompletionRequest(
            model=self.model,
            messages=[
                ChatMessage(role="system", content=build_price_history_prompt(pair, timeframe, current_price)),
                ChatMessage(
                    role="user",
                    content=build_price_history_instruction(pair, timeframe, ordered, current_price),
                ),
            ],
            temperature=HISTORY_TEMPERATURE,
            max_tokens=HISTORY_MAX_TOKENS,
        )
        response = self.client.make_request(request)
        self._validate_content(response)
        if response.choices[0].finish_reason == "length":
            logger.warning("Price history analysis was truncated at %d tokens", HISTORY_MAX_TOKENS)

        result = build_result(response, pair, timeframe, now)
        self._record(user_id, result)
        return result
