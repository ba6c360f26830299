import io

from PIL import Image, ImageOps, UnidentifiedImageError

from imgjobs.core.exceptions import EncoderError
from imgjobs.core.registries import ImageEncoder


def target_size(
    original: tuple[int, int], width: int | None, height: int | None
) -> tuple[int, int]:
    """
    Output dimensions for the requested width/height.

    Both given: stretch to fill. One given: scale the other to keep the aspect
    ratio. Neither: keep the original size.
    """
    src_w, src_h = original
    if width and height:
        return width, height
    if width:
        return width, max(1, round(src_h * width / src_w))
    if height:
        return max(1, round(src_w * height / src_h)), height
    return src_w, src_h


def transform_image(
    data: bytes,
    encoder: ImageEncoder,
    quality: int,
    width: int | None = None,
    height: int | None = None,
) -> bytes:
    """Resize (bicubic) and re-encode image bytes. CPU bound: run off the loop."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            # Apply EXIF rotation before resizing so width/height mean what the user saw
            image = ImageOps.exif_transpose(image)
            size = target_size(image.size, width, height)
            if size != image.size:
                image = image.resize(size, Image.Resampling.BICUBIC)
            return encoder.encode(image, quality)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise EncoderError(f"Cannot transform image: {e}") from e
