"""
Aspect ratio for a generation request.

Rules, used both for live requests and queue replay:
1. explicit ratio from the user (@16:9) wins;
2. otherwise the catalog ratio nearest to the first image, or "" (let the
   model decide) when even the nearest is more than 10% off;
3. no image at all: 1:1.
"""
import io
import logging

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_ASPECT_RATIO = "1:1"
MAX_RELATIVE_ERROR = 0.1

SUPPORTED_RATIOS: dict[str, float] = {
    "1:1": 1.0,
    "2:3": 2 / 3,
    "3:2": 3 / 2,
    "3:4": 3 / 4,
    "4:3": 4 / 3,
    "4:5": 4 / 5,
    "5:4": 5 / 4,
    "9:16": 9 / 16,
    "16:9": 16 / 9,
    "21:9": 21 / 9,
}


def image_dimensions(data: bytes) -> tuple[int, int]:
    """Width and height from the image header (no full decode)."""
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def nearest_supported_ratio(width: int, height: int) -> str:
    """Closest catalog ratio, or "" when the best match is more than 10% off."""
    if width <= 0 or height <= 0:
        return ""
    actual = width / height
    best_name, best_diff = "", float("inf")
    for name, value in SUPPORTED_RATIOS.items():
        diff = abs(actual - value)
        if diff < best_diff:
            best_name, best_diff = name, diff
    if best_diff / actual > MAX_RELATIVE_ERROR:
        return ""
    return best_name


def resolve_aspect_ratio(requested: str | None, first_image: bytes | None = None) -> str:
    requested = (requested or "").strip()
    if requested:
        return requested
    if not first_image:
        return DEFAULT_ASPECT_RATIO
    try:
        width, height = image_dimensions(first_image)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning("aspect_ratio_decode_failed", extra={"error": str(e)})
        return DEFAULT_ASPECT_RATIO
    return nearest_supported_ratio(width, height)


def ratio_display_text(requested: str | None, resolved: str, image_count: int) -> str:
    """Ratio as shown in status messages."""
    if (requested or "").strip():
        return resolved
    if not resolved:
        return "Auto"
    if image_count > 0:
        return f"{resolved} (auto)"
    return f"{resolved} (default)"
