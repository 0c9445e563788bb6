from io import BytesIO
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont

from ..core.config import LABEL_BAR_HEIGHT, LABEL_FONT_SIZE, THUMBNAIL_SIZE, TRANSPARENT_BACKGROUND
from ..core.errors import ScreenshotError

FULL_HEIGHT_JS = """() => Math.max(
    document.documentElement ? document.documentElement.scrollHeight || 0 : 0,
    document.body ? document.body.scrollHeight : 0
)"""


def playwright_rasterize(page, width: int, height: int) -> bytes:
    """Default rasterizer: size the viewport and screenshot exactly that area."""
    page.set_viewport_size({"width": width, "height": height})
    return page.screenshot(type="png", omit_background=TRANSPARENT_BACKGROUND)


def full_content_height(page) -> int:
    return int(page.evaluate(FULL_HEIGHT_JS) or 0)


def _png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _open(image_bytes: bytes) -> Image.Image:
    if not image_bytes:
        raise ScreenshotError("No screenshot data provided", None, "missing-data")
    try:
        img = Image.open(BytesIO(image_bytes))
        img.load()
        return img
    except Exception as e:
        raise ScreenshotError(f"Failed to load image data: {e}", None, "image-load-error") from e


def image_size(image_bytes: bytes) -> Tuple[int, int]:
    return _open(image_bytes).size


def _label_font():
    try:
        return ImageFont.load_default(size=LABEL_FONT_SIZE)
    except (TypeError, ImportError):
        # Pillow < 10.1 has no sized default font; builds without FreeType neither
        return ImageFont.load_default()


def overlay_label(image_bytes: bytes, text: str, bar_height: int = LABEL_BAR_HEIGHT) -> bytes:
    """Draw `text` on a translucent black bar along the bottom edge of the image."""
    img = _open(image_bytes).convert("RGBA")
    w, h = img.size
    bar = Image.new("RGBA", img.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(bar)
    draw.rectangle([0, max(h - bar_height, 0), w, h], fill=(0, 0, 0, 128))
    font = _label_font()
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    y = h - bar_height + (bar_height - (bottom - top)) / 2 - top
    draw.text((10, y), text, fill=(255, 255, 255, 255), font=font)
    return _png_bytes(Image.alpha_composite(img, bar))


def create_thumbnail(image_bytes: bytes, size: Tuple[int, int] = THUMBNAIL_SIZE) -> bytes:
    """Scale the image to exactly `size` (aspect ratio is not preserved)."""
    img = _open(image_bytes)
    try:
        thumb = img.convert("RGBA").resize(size, Image.LANCZOS)
    except Exception as e:
        raise ScreenshotError(f"Error creating thumbnail: {e}", None, "resize-error") from e
    return _png_bytes(thumb)

