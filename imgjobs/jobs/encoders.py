"""
Output encoder registration.

Registers the lossy encoders with the global encoder registry.
"""

import io

from PIL import Image

from imgjobs.config.logging import get_logger
from imgjobs.core.registries import encoder_registry

logger = get_logger(__name__)


class JpegEncoder:
    content_type = "image/jpeg"

    def encode(self, image: Image.Image, quality: int) -> bytes:
        # JPEG has no alpha channel or palette
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()


class WebpEncoder:
    content_type = "image/webp"

    def encode(self, image: Image.Image, quality: int) -> bytes:
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="WEBP", quality=quality)
        return buffer.getvalue()


def register_encoders() -> None:
    """Register all output encoders with the encoder registry."""
    encoder_registry.register("jpeg", JpegEncoder(), aliases=("jpg",))
    encoder_registry.register("webp", WebpEncoder())
    logger.debug("Encoders registered", encoders=encoder_registry.list())


# Auto-register encoders when module is imported
register_encoders()
