"""
Chart image and analysis content validation.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Data URIs shorter than this are almost always a blank or half-rendered chart
MIN_IMAGE_DATA_LENGTH = 20000

VISION_FAILURE_PATTERNS = (
    "i can't analyze the chart directly",
    "i'm unable to analyze the chart image",
    "i cannot analyze images",
    "i don't have the ability to analyze images",
    "i cannot see the image",
    "i'm not able to see the actual chart",
    "however, i can help you understand how to analyze",
)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None
    image_size: Optional[int] = None
    image_type: Optional[str] = None


def validate_image_data(base64_image: str) -> ValidationResult:
    """Check that a chart image is a plausible base64 image data URI.

    Args:
        base64_image: ``data:image/...;base64,...`` string

    Returns:
        ValidationResult with size and image type when valid
    """
    if not base64_image or not base64_image.startswith("data:image/"):
        logger.error("Invalid image format: %r", (base64_image or "")[:50])
        return ValidationResult(
            is_valid=False,
            error="Invalid image format. Expected base64 encoded image with proper data URI header.",
        )

    image_size = len(base64_image)
    if image_size < MIN_IMAGE_DATA_LENGTH:
        logger.error("Image too small, likely invalid: %d chars", image_size)
        return ValidationResult(
            is_valid=False,
            error=(
                "Image appears to be too small or invalid. Please ensure the chart "
                "is fully loaded and try again."
            ),
        )

    header = base64_image.split(";", 1)[0]
    image_type = header.split("/", 1)[1] if "/" in header else "unknown"
    logger.debug("Image validation passed: %d KB, %s", round(image_size / 1024), image_type)
    return ValidationResult(is_valid=True, image_size=image_size, image_type=image_type or "unknown")


def validate_analysis_content(content: str) -> ValidationResult:
    """Check that the model actually analyzed the chart."""
    if not content or not content.strip():
        return ValidationResult(is_valid=False, error="Empty analysis content received from AI")

    lowered = content.lower()
    if any(pattern in lowered for pattern in VISION_FAILURE_PATTERNS):
        logger.error("AI vision failure detected: %s", content[:300])
        return ValidationResult(
            is_valid=False,
            error=(
                "The AI was unable to analyze the chart image. The image may not "
                "have been processed correctly."
            ),
        )

    return ValidationResult(is_valid=True)
