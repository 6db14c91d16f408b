"""
Prompt builders for chart analysis.

Produces the analyst instructions sent alongside chart images.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from .server_time import format_utc
from .trading_pairs import is_auto_detect, technique_label

SINGLE_CHART_SECTIONS = """**1. Market Context & Trend Detection:**
- What is the overall market context, recent trend (bullish/bearish/sideways), and higher/lower time-frame perspective (if visible from chart)?
- Mention if significant changes in volatility, session shifts, or news events are likely affecting price movement.

**2. Key Price Levels:**
- Identify all clearly visible support & resistance levels with specific price values (and why you chose them, e.g. prior swing high/low, clustering, zones).
- Mark potential breakout or reversal zones.

**3. Notable Chart/Candlestick Patterns:**
- List any major price patterns (head & shoulders, double top/bottom, triangles, wedges, flags) or candlestick signals (engulfing, doji, pinbar) seen on the chart, including where they occur relative to the key levels.

**4. Price Action & Momentum Analysis:**
- Describe price action signals: recent impulses, corrections, consolidation, rejection wicks, or strong closes.
- If visible, discuss volume spikes or volatility changes (or note if not visible on chart).

**5. Indicator Insights (If Visible):**
- If the chart has indicators visible (like MA, RSI, MACD, Stochastic, volume), analyze what they suggest in the current market context.

**6. Trade Opportunity & Setup Suggestion:**
- Propose a realistic trading plan based on the analysis above. Specify:
    - Trade direction (buy/sell/wait)
    - Entry trigger or zone (ideally a price or pattern)
    - Stop loss level (explain placement)
    - 1-2 take profit targets (with reasoning)
    - Risk/reward ratio estimate
    - Invalidation scenario (what price action would make the trade setup invalid?)

**7. Trader's Commentary:**
- Add at least two additional observations or tips for effective trading in a market like this, such as what to watch out for in this pair/pattern, psychological notes, or risk management reminders.
- Add a risk warning regarding leverage and overtrading."""

REQUIREMENTS = """**REQUIREMENTS:**
- Don't make up data if you can't see it clearly in the image. If unknown, just write "Not visible".
- Write at least 5-8 sentences for the overall analysis.
- Use markdown for clarity.
- If you cannot detect the trading pair or timeframe from the chart, clearly state "Unable to detect from chart image" in the identification section."""


def build_analysis_prompt(pair_name: str, timeframe: str, now: Optional[datetime] = None) -> str:
    """Build the single-chart analyst prompt.

    An empty or AUTO_DETECT pair or timeframe asks the model to read it
    off the chart.

    Args:
        pair_name: Trading pair, or AUTO_DETECT
        timeframe: Chart timeframe, or AUTO_DETECT
        now: Capture time stated in the prompt (defaults to now)

    Returns:
        Prompt text
    """
    captured_at = format_utc(now or datetime.now(timezone.utc))
    detect_pair = is_auto_detect(pair_name)
    detect_timeframe = is_auto_detect(timeframe)

    if detect_pair:
        pair_instruction = (
            "First, identify the trading pair from the chart (look for pair name "
            "in the chart title, top left, or anywhere visible)"
        )
        pair_line = "- Trading Pair: [Identify from chart]"
    else:
        pair_instruction = f"Analyze this {pair_name} chart"
        pair_line = f"- Trading Pair: {pair_name}"

    if detect_timeframe:
        timeframe_instruction = (
            "Also identify the timeframe from the chart (look for timeframe "
            "indicators like 1H, 4H, 1D, etc.)"
        )
        timeframe_line = "- Timeframe: [Identify from chart]"
    else:
        timeframe_instruction = f"on the {timeframe} timeframe"
        timeframe_line = f"- Timeframe: {timeframe}"

    return f"""You are a professional forex analyst and multi-year full-time trader.
Analyze the attached chart image as a real TradingView forex candlestick chart that was captured at {captured_at}.

{pair_instruction} {timeframe_instruction}.

Provide a comprehensive, step-by-step technical analysis and specific trade setup.
The goal is to deliver actionable, realistic analysis and trade recommendations that a real trader can use.

**Please answer in this structured format:**

---

**CHART IDENTIFICATION:**
{pair_line}
{timeframe_line}

{SINGLE_CHART_SECTIONS}

---

{REQUIREMENTS}

---"""


def build_user_instruction(pair_name: str, timeframe: str) -> str:
    """Short user-turn text that accompanies the chart image."""
    pair = "this chart" if is_auto_detect(pair_name) else f"this {pair_name} chart"
    frame = "" if is_auto_detect(timeframe) else f" on {timeframe} timeframe"
    return (
        f"Analyze {pair}{frame}. Focus on actionable trading insights "
        f"with specific price levels."
    )


def build_multi_timeframe_prompt(technique: str = "general") -> str:
    """Build the conversational prompt for a set of timeframe charts."""
    return f"""You are an expert forex trader and technical analyst. Analyze these multiple timeframe charts and provide a comprehensive trading analysis.

Be conversational and natural in your response, like you're explaining to a fellow trader. Focus on:

1. **Multi-timeframe trend analysis** - What's the overall direction across timeframes?
2. **Key support and resistance levels** - Identify the most important price levels
3. **Chart patterns and formations** - What patterns do you see forming or completed?
4. **Technical indicators** - RSI, moving averages, momentum indicators, etc.
5. **Trading strategy** - Provide specific entry, stop loss, and take profit levels
6. **Risk management** - What should traders watch out for?

Combine insights from all timeframes to give the best possible trading setup. Be specific with price levels and explain your reasoning clearly.

Technique focus: {technique_label(technique)}

Provide your analysis in a natural, flowing conversation style - not in bullet points or rigid format."""


def format_candle_time(moment: datetime) -> str:
    """Format a candle timestamp as ``YYYY-MM-DD HH:MM:SS UTC``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_candles(candles: Sequence) -> str:
    """One ``timestamp,open,high,low,close,volume`` line per candle."""
    lines = []
    for candle in candles:
        volume = "" if candle.volume is None else f"{candle.volume:g}"
        lines.append(
            f"{format_candle_time(candle.timestamp)},{candle.open:g},{candle.high:g},"
            f"{candle.low:g},{candle.close:g},{volume}"
        )
    return "\n".join(lines)


def _price_text(current_price: Optional[float]) -> str:
    return "Not available" if current_price is None else f"{current_price:g}"


def build_price_history_prompt(pair_name: str, timeframe: str, current_price: Optional[float] = None) -> str:
    """Build the price-action analyst prompt for OHLCV history.

    Args:
        pair_name: Trading pair
        timeframe: Candle timeframe label, e.g. ``H1``
        current_price: Latest tick price, if known

    Returns:
        Prompt text
    """
    return f"""You are a professional forex trader who specializes in technical price action analysis on any timeframe or pair.

You will be given:
- A forex pair: {pair_name}
- A timeframe: {timeframe}
- The latest current_price (the live tick price): {_price_text(current_price)}
- Historical OHLCV data for the selected timeframe (all times are UTC, candle format = timestamp, open, high, low, close, volume)

Analyze the market using clean price action techniques (no indicators) and return only reliable trade setups that fulfill all of these rules:
- Setup must be in the direction of a clean trend or a valid reversal pattern
- Trade must still be valid at current_price; if price has moved past the target or stop, reject the setup
- Minimum Risk-Reward Ratio: 1:1.5 (ideally 1:2 or better)
- Setup must be based on at least 2 technical confluences (e.g. break-retest + structure, or support + candle rejection)

**Output format:**

**Pair & Timeframe Analyzed:** {pair_name} ({timeframe})

**Market Summary:**
- Trend direction (bullish, bearish, or range-bound)
- Structure overview (impulsive, corrective, consolidation)
- Buyer vs seller strength

**Key Support & Resistance Zones:**
- Price and time reference
- How price reacted to each zone

**Valid Trade Setup (if any):**
- Entry Zone: price and explanation
- Stop Loss: price and reason (beyond the invalidation zone)
- Take Profit: logical target
- R:R Ratio (minimum 1:1.5)
- Is current_price inside the entry zone? Yes / No

**Final Status:**
"Setup is VALID for execution" or "Setup is NO LONGER VALID because price has moved too far"

**Short-Term Forecast:**
- Expectation for the next few candles
- Watch zones and caution levels

If there is no high-quality setup, return exactly:
"No high-probability trade setup detected on {pair_name} ({timeframe}) based on current structure and price."

**Rules:**
- Do not suggest a trade if price has already broken past the target
- Use only candle structure, price action and volume behavior
- Do not use RSI, MACD, moving averages or any other indicator
- Output must reflect real-world trading logic and be actionable at current_price"""


def build_price_history_instruction(
    pair_name: str,
    timeframe: str,
    candles: Sequence,
    current_price: Optional[float] = None,
) -> str:
    """User-turn text carrying the candle data."""
    first = format_candle_time(candles[0].timestamp)
    last = format_candle_time(candles[-1].timestamp)
    return (
        f"Analyze this {pair_name} {timeframe} data ({len(candles)} data points from {first} to {last}):\n\n"
        f"Current Price: {_price_text(current_price)}\n\n"
        f"Historical Data:\n{format_candles(candles)}\n\n"
        f"Provide your professional forex trading analysis following the required format."
    )
