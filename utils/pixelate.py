"""Cover art pixelation."""

import io

from PIL import Image

# Covers are rendered as squares of this size
COVER_SIZE = 480


def _square(image: Image.Image, size: int) -> Image.Image:
    """Scale to cover a size x size square and crop the overflow, centred."""
    scale = max(size / image.width, size / image.height)
    width = max(size, round(image.width * scale))
    height = max(size, round(image.height * scale))
    image = image.resize((width, height), Image.Resampling.LANCZOS)
    left = (width - size) // 2
    top = (height - size) // 2
    return image.crop((left, top, left + size, top + size))


def pixelate(image: Image.Image, factor: int, size: int = COVER_SIZE) -> Image.Image:
    """Render a cover at a pixelation factor.

    The cover is first cropped to a centred square. A factor above 1 downsamples to size/factor and scales back up with
    nearest-neighbour, giving hard blocks. A factor of 1 is the smoothed,
    full-fidelity cover.
    """
    if factor < 1:
        raise ValueError("pixelation factor must be at least 1")

    image = _square(image.convert("RGB"), size)
    if factor == 1:
        return image

    small_size = max(1, size // factor)
    small = image.resize((small_size, small_size), Image.Resampling.BOX)
    return small.resize((size, size), Image.Resampling.NEAREST)


def pixelate_bytes(image_bytes: bytes, factor: int, size: int = COVER_SIZE) -> bytes:
    """Pixelate encoded image bytes and return PNG bytes."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        result = pixelate(image, factor, size)
    output = io.BytesIO()
    result.save(output, format="PNG")
    return output.getvalue()
