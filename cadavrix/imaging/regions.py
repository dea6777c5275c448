from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterable, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from cadavrix.geometry.template_layout import BACKGROUND_RGB, DEFAULT_LAYOUT, Rect, TemplateLayout
from cadavrix.grid.errors import Invalid


@dataclass(frozen=True)
class Fragment:
    image: Image.Image
    left: int
    top: int


def _require_rgb(img: Image.Image) -> Image.Image:
    return img if img.mode == "RGB" else img.convert("RGB")


def _bounds_check(size: Tuple[int, int], rect: Rect) -> None:
    w, h = size
    left, top, right, bottom = rect
    if left < 0 or top < 0 or right > w or bottom > h or right <= left or bottom <= top:
        raise ValueError(f"Rect out of bounds: {rect} for image size {w}×{h}")


def extract_region(img: Image.Image, rect: Rect) -> Image.Image:
    _bounds_check(img.size, rect)
    return img.crop(rect)  # exact crop


def resize(img: Image.Image, width: int, height: int) -> Image.Image:
    if img.size == (width, height):
        return img
    return img.resize((width, height), Image.Resampling.LANCZOS)


def composite_over_blank_canvas(
    size: Tuple[int, int],
    fragments: Iterable[Fragment],
    *,
    background: Tuple[int, int, int] = BACKGROUND_RGB,
) -> Image.Image:
    canvas = Image.new("RGB", size, background)
    for frag in fragments:
        patch = _require_rgb(frag.image)
        w, h = patch.size
        _bounds_check(size, (frag.left, frag.top, frag.left + w, frag.top + h))
        canvas.paste(patch, (frag.left, frag.top))  # exact paste (no blending)
    return canvas


def encode(img: Image.Image, fmt: str = "WEBP", quality: int = 90) -> bytes:
    buf = io.BytesIO()
    fmt = fmt.upper()
    if fmt == "PNG":
        img.save(buf, format="PNG")
    else:
        img.save(buf, format=fmt, quality=int(quality))
    return buf.getvalue()


def decode(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise Invalid(f"Not a decodable image: {e}") from e
    return _require_rgb(img)


def normalize_artwork(img: Image.Image, layout: TemplateLayout = DEFAULT_LAYOUT) -> Image.Image:
    """
    Bring a submitted artwork to center_px x center_px.

    A submission painted on the full guide canvas keeps only its centre
    (the borders are the neighbors' pixels, not the contributor's);
    anything else is cover-fitted.
    """
    img = _require_rgb(img)
    c = layout.center_px
    if img.size == layout.canvas_size:
        return extract_region(img, layout.center_rect())
    if img.size == (c, c):
        return img
    return ImageOps.fit(img, (c, c), method=Image.Resampling.LANCZOS)
