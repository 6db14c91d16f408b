"""
Trading pair formatting and selection catalogs.

Normalizes free-form pair names to the ``BASE/QUOTE`` form and lists the
pairs, timeframes and techniques offered for analysis.
"""

import re
from typing import Dict, List

AUTO_DETECT = "AUTO_DETECT"

CRYPTO_SYMBOLS: Dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "ripple": "XRP",
    "litecoin": "LTC",
    "cardano": "ADA",
    "polkadot": "DOT",
    "dogecoin": "DOGE",
    "solana": "SOL",
    "tetherus": "USDT",
    "tether": "USDT",
    "usd coin": "USDC",
    "binance coin": "BNB",
    "binance": "BNB",
    "chainlink": "LINK",
    "stellar": "XLM",
    "vechain": "VET",
    "monero": "XMR",
    "avalanche": "AVAX",
    "uniswap": "UNI",
    "polygon": "MATIC",
    "aave": "AAVE",
    "maker": "MKR",
    "compound": "COMP",
}

FOREX_SYMBOLS: Dict[str, str] = {
    "euro": "EUR",
    "dollar": "USD",
    "british pound": "GBP",
    "pound": "GBP",
    "japanese yen": "JPY",
    "yen": "JPY",
    "australian dollar": "AUD",
    "canadian dollar": "CAD",
    "swiss franc": "CHF",
    "new zealand dollar": "NZD",
    "chinese yuan": "CNY",
    "hong kong dollar": "HKD",
    "singapore dollar": "SGD",
    "turkish lira": "TRY",
    "russian ruble": "RUB",
    "swedish krona": "SEK",
    "norwegian krone": "NOK",
}

COMMODITY_SYMBOLS: Dict[str, str] = {
    "gold": "XAU",
    "silver": "XAG",
    "platinum": "XPT",
    "palladium": "XPD",
    "crude oil": "OIL",
    "natural gas": "GAS",
}

# Quote-side coins; a lone mention is paired against BTC
QUOTE_COINS = {"USDT", "USDC", "BUSD", "DAI"}

_SLASH_PAIR = re.compile(r"^[A-Za-z0-9]{2,5}/[A-Za-z0-9]{2,5}$")
_VALID_PAIR = re.compile(r"^[A-Z0-9]{2,5}/[A-Z0-9]{2,5}$")
_SIX_LETTERS = re.compile(r"^[A-Za-z]{6}$")

CURRENCY_PAIRS: List[Dict[str, str]] = [
    {"value": "EUR/USD", "label": "EUR/USD - Euro vs US Dollar"},
    {"value": "GBP/USD", "label": "GBP/USD - British Pound vs US Dollar"},
    {"value": "USD/JPY", "label": "USD/JPY - US Dollar vs Japanese Yen"},
    {"value": "USD/CHF", "label": "USD/CHF - US Dollar vs Swiss Franc"},
    {"value": "AUD/USD", "label": "AUD/USD - Australian Dollar vs US Dollar"},
    {"value": "USD/CAD", "label": "USD/CAD - US Dollar vs Canadian Dollar"},
    {"value": "NZD/USD", "label": "NZD/USD - New Zealand Dollar vs US Dollar"},
    {"value": "EUR/GBP", "label": "EUR/GBP - Euro vs British Pound"},
    {"value": "EUR/JPY", "label": "EUR/JPY - Euro vs Japanese Yen"},
    {"value": "GBP/JPY", "label": "GBP/JPY - British Pound vs Japanese Yen"},
    {"value": "XAU/USD", "label": "XAU/USD - Gold vs US Dollar"},
    {"value": "XAG/USD", "label": "XAG/USD - Silver vs US Dollar"},
    {"value": "BTC/USD", "label": "BTC/USD - Bitcoin vs US Dollar"},
    {"value": "ETH/USD", "label": "ETH/USD - Ethereum vs US Dollar"},
]

TIMEFRAMES: List[str] = [
    "1 Minute",
    "5 Minutes",
    "15 Minutes",
    "30 Minutes",
    "1 Hour",
    "4 Hours",
    "Daily",
    "Weekly",
    "Monthly",
]

TRADING_TECHNIQUES: List[Dict[str, str]] = [
    {"value": "general", "label": "General Technical Analysis"},
    {"value": "breakout", "label": "Breakout Technique"},
    {"value": "supply-demand", "label": "Supply and Demand (SnD)"},
    {"value": "support-resistance", "label": "Support and Resistance (SnR)"},
    {"value": "fibonacci", "label": "Fibonacci Analysis"},
    {"value": "ict", "label": "ICT (Inner Circle Trader) Concepts"},
    {"value": "smart-money", "label": "Smart Money Concepts"},
    {"value": "price-action", "label": "Price Action Analysis"},
    {"value": "harmonic", "label": "Harmonic Patterns"},
    {"value": "elliott-wave", "label": "Elliott Wave Theory"},
]


def _lookup_symbol(name: str, tables: List[Dict[str, str]]) -> str:
    """Map a currency name to its symbol, or return it unchanged."""
    lowered = name.lower()
    for table in tables:
        for full_name, symbol in table.items():
            if full_name in lowered:
                return symbol
    return name


def format_trading_pair(pair_name: str) -> str:
    """Format a trading pair in the ``BASE/QUOTE`` form (e.g. BTC/USDT, EUR/USD).

    Accepts full names ("Bitcoin"), run-together symbols ("eurusd") and
    slash pairs with names on either side ("Euro/Dollar").

    Args:
        pair_name: Free-form pair name

    Returns:
        Upper-case pair, or "Unknown Pair" for empty input
    """
    if not pair_name:
        return "Unknown Pair"

    if _SLASH_PAIR.match(pair_name):
        return pair_name.upper()

    if _SIX_LETTERS.match(pair_name):
        return f"{pair_name[:3].upper()}/{pair_name[3:].upper()}"

    lowered = pair_name.lower()
    if "/" not in pair_name:
        for full_name, symbol in CRYPTO_SYMBOLS.items():
            if full_name in lowered:
                if symbol in QUOTE_COINS:
                    return f"BTC/{symbol}"
                return f"{symbol}/USDT"

        for full_name, symbol in COMMODITY_SYMBOLS.items():
            if full_name in lowered:
                return f"{symbol}/USD"

        return pair_name.upper()

    parts = pair_name.split("/")
    if len(parts) == 2:
        tables = [CRYPTO_SYMBOLS, FOREX_SYMBOLS, COMMODITY_SYMBOLS]
        base = _lookup_symbol(parts[0].strip(), tables)
        quote = _lookup_symbol(parts[1].strip(), tables)
        return f"{base.upper()}/{quote.upper()}"

    return pair_name.upper()


def is_valid_trading_pair(pair_name: str) -> bool:
    """Whether a string is an upper-case ``XXX/YYY`` pair."""
    if not pair_name:
        return False
    return bool(_VALID_PAIR.match(pair_name))


def is_auto_detect(value: str) -> bool:
    """Whether the model should detect this field from the chart itself."""
    return not value or value == AUTO_DETECT


def technique_label(value: str) -> str:
    """Display label for a technique value, or the value itself if unknown."""
    for technique in TRADING_TECHNIQUES:
        if technique["value"] == value:
            return technique["label"]
    return value
