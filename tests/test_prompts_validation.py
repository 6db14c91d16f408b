"""
Unit tests for prompt building and image/content validation.
"""

from datetime import datetime, timezone

from forex_radar.core.prompts import build_analysis_prompt, build_multi_timeframe_prompt, build_user_instruction
from forex_radar.core.trading_pairs import AUTO_DETECT
from forex_radar.core.validation import MIN_IMAGE_DATA_LENGTH, validate_analysis_content, validate_image_data

NOW = datetime(2024, 5, 6, 14, 30, tzinfo=timezone.utc)


def _image(length: int = MIN_IMAGE_DATA_LENGTH, mime: str = "png") -> str:
    header = f"data:image/{mime};base64,"
    return header + "A" * (length - len(header))


class TestAnalysisPrompt:
    """Test the single-chart prompt."""

    def test_known_pair_and_timeframe(self):
        prompt = build_analysis_prompt("EUR/USD", "1 Hour", NOW)

        assert "Analyze this EUR/USD chart on the 1 Hour timeframe." in prompt
        assert "- Trading Pair: EUR/USD" in prompt
        assert "- Timeframe: 1 Hour" in prompt
        assert "captured at 2024-05-06T14:30:00.000Z" in prompt
        assert "[Identify from chart]" not in prompt

    def test_all_sections_present(self):
        prompt = build_analysis_prompt("EUR/USD", "1 Hour", NOW)

        for heading in (
            "**1. Market Context & Trend Detection:**",
            "**2. Key Price Levels:**",
            "**3. Notable Chart/Candlestick Patterns:**",
            "**4. Price Action & Momentum Analysis:**",
            "**5. Indicator Insights (If Visible):**",
            "**6. Trade Opportunity & Setup Suggestion:**",
            "**7. Trader's Commentary:**",
            "**REQUIREMENTS:**",
        ):
            assert heading in prompt

    def test_auto_detect(self):
        prompt = build_analysis_prompt(AUTO_DETECT, "", NOW)

        assert "First, identify the trading pair from the chart" in prompt
        assert "Also identify the timeframe from the chart" in prompt
        assert "- Trading Pair: [Identify from chart]" in prompt
        assert "- Timeframe: [Identify from chart]" in prompt

    def test_user_instruction(self):
        assert build_user_instruction("EUR/USD", "4 Hours").startswith(
            "Analyze this EUR/USD chart on 4 Hours timeframe."
        )
        assert build_user_instruction(AUTO_DETECT, AUTO_DETECT).startswith("Analyze this chart.")

    def test_multi_timeframe_prompt_names_technique(self):
        prompt = build_multi_timeframe_prompt("fibonacci")

        assert "Technique focus: Fibonacci Analysis" in prompt
        assert "multiple timeframe charts" in prompt

    def test_multi_timeframe_prompt_default_technique(self):
        assert "Technique focus: General Technical Analysis" in build_multi_timeframe_prompt()


class TestImageValidation:
    """Test chart image checks."""

    def test_valid_image(self):
        result = validate_image_data(_image(mime="jpeg"))

        assert result.is_valid
        assert result.error is None
        assert result.image_size == MIN_IMAGE_DATA_LENGTH
        assert result.image_type == "jpeg"

    def test_missing_data_uri_header(self):
        result = validate_image_data("A" * MIN_IMAGE_DATA_LENGTH)

        assert not result.is_valid
        assert result.error.startswith("Invalid image format")

    def test_empty_image(self):
        assert not validate_image_data("").is_valid

    def test_too_small(self):
        """A blank or half-rendered chart produces a short data URI."""
        result = validate_image_data(_image(MIN_IMAGE_DATA_LENGTH - 1))

        assert not result.is_valid
        assert result.error.startswith("Image appears to be too small")


class TestContentValidation:
    """Test checks on the model's answer."""

    def test_valid_analysis(self):
        assert validate_analysis_content("EUR/USD shows a bullish structure above 1.0800.").is_valid

    def test_empty_content(self):
        for content in ("", "   \n"):
            result = validate_analysis_content(content)
            assert not result.is_valid
            assert result.error == "Empty analysis content received from AI"

    def test_vision_failure_detected(self):
        result = validate_analysis_content(
            "I cannot see the image you provided. However, I can help you understand how to analyze charts."
        )

        assert not result.is_valid
        assert "unable to analyze the chart image" in result.error
