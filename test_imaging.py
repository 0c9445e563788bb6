from io import BytesIO

import pytest
from PIL import Image

from page_capture.core.errors import ScreenshotError
from page_capture.utils.imaging import (
    create_thumbnail,
    full_content_height,
    image_size,
    overlay_label,
)


def _png(width, height, color="white"):
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def test_label_keeps_size_and_darkens_bottom_bar():
    labeled = overlay_label(_png(400, 200), "Resolution: 400x200")

    img = Image.open(BytesIO(labeled)).convert("RGB")
    assert img.size == (400, 200)
    assert img.getpixel((395, 5)) == (255, 255, 255)
    # Right edge of the bar is past the text, so only the 50% black overlay shows.
    r, g, b = img.getpixel((395, 195))
    assert 120 <= r <= 135 and r == g == b


def test_thumbnail_is_exactly_120_by_90():
    for size in [(1920, 1080), (375, 4000), (10, 10)]:
        thumb = create_thumbnail(_png(*size))
        assert image_size(thumb) == (120, 90)


def test_invalid_image_data_raises():
    with pytest.raises(ScreenshotError):
        create_thumbnail(b"")
    with pytest.raises(ScreenshotError):
        image_size(b"definitely not a png")



def test_full_content_height(page):
    page.scroll_height = 3456
    assert full_content_height(page) == 3456
