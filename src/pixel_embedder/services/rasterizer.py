"""Image rasterization into canvas writes."""

import logging
import math
from dataclasses import dataclass
from io import BytesIO

from PIL import Image

from pixel_embedder.domain.pixels import Write

_ALPHA_THRESHOLD = 128

_logger = logging.getLogger(__name__)


class DecodeError(ValueError):
    """Raised when image bytes cannot be decoded."""


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode image bytes into an RGBA Pillow image."""
    if not image_bytes:
        raise DecodeError("Empty image payload")
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Unable to decode image bytes: {exc}") from exc
    return image.convert("RGBA")


def scaled_size(width: int, height: int, max_width: int) -> tuple[int, int]:
    """Fit an image inside a max_width square, keeping its aspect ratio."""
    scale = min(max_width / width, max_width / height)
    return math.floor(width * scale), math.floor(height * scale)


def estimate_minutes(count: int, min_interval_seconds: float) -> int:
    """Estimate minutes needed to place count writes at the pacing interval.

    Returns 0 when there is no minimum interval.
    """
    if min_interval_seconds <= 0:
        return 0
    per_minute = max(1, math.floor(60 / min_interval_seconds))
    return math.ceil(count / per_minute)


def centered_origin(
    grid_width: int, grid_height: int, max_width: int
) -> tuple[int, int]:
    """Return the anchor that centres a max_width square on the grid."""
    return (
        max(0, (grid_width - max_width) // 2),
        max(0, (grid_height - max_width) // 2),
    )


@dataclass
class Rasterizer:
    """Converts images into row-major lists of writes."""

    grid_width: int
    grid_height: int
    min_interval_seconds: float = 0.4

    def rasterize(
        self, image_bytes: bytes, origin_x: int, origin_y: int, max_width: int
    ) -> list[Write]:
        """Return writes for every opaque pixel of the scaled image."""
        try:
            image = decode_image(image_bytes)
        except DecodeError as exc:
            _logger.error("Failed to load image: %s", exc)
            return []

        width, height = scaled_size(image.width, image.height, max_width)
        _logger.info(
            "Rasterizing %sx%s image to %sx%s at (%s, %s)",
            image.width,
            image.height,
            width,
            height,
            origin_x,
            origin_y,
        )
        if width <= 0 or height <= 0:
            return []
        if (width, height) != image.size:
            image = image.resize((width, height), Image.Resampling.BILINEAR)

        data = image.tobytes()
        writes: list[Write] = []
        outside = 0
        for y in range(height):
            for x in range(width):
                offset = (y * width + x) * 4
                red, green, blue, alpha = data[offset : offset + 4]
                if alpha < _ALPHA_THRESHOLD:
                    continue
                target_x = origin_x + x
                target_y = origin_y + y
                if not self._in_bounds(target_x, target_y):
                    outside += 1
                    continue
                writes.append(
                    Write(
                        x=target_x,
                        y=target_y,
                        color=f"{red:02X}{green:02X}{blue:02X}",
                    )
                )

        if outside:
            _logger.warning("Dropped %s pixels outside the canvas", outside)
        _logger.info(
            "Extracted %s pixels, estimated %s minutes",
            len(writes),
            estimate_minutes(len(writes), self.min_interval_seconds),
        )
        return writes

    def _in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.grid_width and 0 <= y < self.grid_height
