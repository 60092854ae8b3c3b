"""
Image utility functions for advert rendering.

This module provides image processing utilities including:
- Font loading and per-size caching
- Glyph coverage checks and placeholder substitution
- Text measurement, shrink-to-fit and ellipsis truncation
- RTL text shaping
"""

import logging
import threading
from io import BytesIO
from typing import Callable, Dict, Optional, Tuple

import arabic_reshaper
from bidi.algorithm import get_display
from PIL import Image, ImageDraw, ImageFont

from errors import FontLoadError

logger = logging.getLogger(__name__)

# Step used when shrinking the font to fit a text box
FONT_SIZE_STEP = 2

ELLIPSIS = "…"
ASCII_ELLIPSIS = "..."

# Never assigned by Unicode, so every font maps it to its .notdef glyph
_NOTDEF_PROBE = "\U0010ffff"
_PROBE_SIZE = 32


# ========= TEXT HELPERS =========
def fix_rtl(text: str) -> str:
    """Convert Hebrew/Arabic text to visual order with joined letter forms."""
    if not text:
        return text
    return get_display(arabic_reshaper.reshape(text))


# ========= FONT LOADING =========
class FontBook:
    """
    One typeface, available at any pixel size.

    The font data is read once; sized variants are created on demand and
    cached, so concurrent renders share the same immutable font objects.
    """

    def __init__(self, factory: Callable[[int], ImageFont.FreeTypeFont], name: str = "font"):
        self._factory = factory
        self.name = name
        self._sizes: Dict[int, ImageFont.FreeTypeFont] = {}
        self._coverage: Dict[str, bool] = {}
        self._lock = threading.Lock()
        self._notdef = self._glyph_signature(_NOTDEF_PROBE)

    def get(self, size: int) -> ImageFont.FreeTypeFont:
        """Return the font at `size` pixels, loading it on first use."""
        font = self._sizes.get(size)
        if font is not None:
            return font
        with self._lock:
            font = self._sizes.get(size)
            if font is None:
                font = self._factory(size)
                self._sizes[size] = font
        return font

    def _glyph_signature(self, ch: str) -> Tuple[float, Tuple[int, int, int, int], bytes]:
        font = self.get(_PROBE_SIZE)
        bbox = font.getbbox(ch)
        img = Image.new("L", (max(bbox[2], 1), max(bbox[3], 1)))
        ImageDraw.Draw(img).text((0, 0), ch, font=font, fill=255)
        return font.getlength(ch), bbox, img.tobytes()

    def has_glyph(self, ch: str) -> bool:
        """
        Whether the font can draw `ch`.

        A character is missing when it rasterizes exactly like .notdef.
        Whitespace always counts as present.
        """
        if ch.isspace():
            return True
        known = self._coverage.get(ch)
        if known is not None:
            return known
        present = self._glyph_signature(ch) != self._notdef
        with self._lock:
            self._coverage[ch] = present
        return present


def load_font(path: Optional[str] = None) -> FontBook:
    """
    Load the typeface used for all adverts.

    Args:
        path: TrueType/OpenType file. None or empty selects Pillow's bundled font.

    Returns:
        FontBook for the typeface

    Raises:
        FontLoadError: If the file cannot be read or is not a usable font
    """
    if path:
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise FontLoadError(f"failed to open font {path!r}: {e}") from e

        def factory(size: int) -> ImageFont.FreeTypeFont:
            return ImageFont.truetype(BytesIO(data), size=size)
        name = path
    else:
        def factory(size: int) -> ImageFont.FreeTypeFont:
            font = ImageFont.load_default(size=size)
            if not isinstance(font, ImageFont.FreeTypeFont):
                raise FontLoadError("Pillow was built without FreeType support")
            return font
        name = "<pillow default>"

    try:
        book = FontBook(factory, name=name)
    except (OSError, ValueError) as e:
        raise FontLoadError(f"failed to load font {name!r}: {e}") from e

    logger.info("Loaded font %s", name)
    return book


def replace_missing_glyphs(text: str, book: FontBook, placeholder: str = "?") -> str:
    """Replace every character the font cannot draw with `placeholder`."""
    return "".join(ch if book.has_glyph(ch) else placeholder for ch in text)


# ========= TEXT MEASUREMENT =========
def get_text_size(text: str, font: ImageFont.FreeTypeFont) -> Tuple[int, int]:
    """
    Get the width and line height of text rendered with the given font.

    The height is ascent + descent, so it does not depend on the characters.
    """
    if not text:
        width = 0
    else:
        bbox = font.getbbox(text)
        width = bbox[2] - bbox[0]
    ascent, descent = font.getmetrics()
    return width, ascent + descent


def fits(text: str, font: ImageFont.FreeTypeFont, max_width: int, max_height: int) -> bool:
    width, height = get_text_size(text, font)
    return width <= max_width and height <= max_height


def get_fitted_font(
    text: str,
    book: FontBook,
    size: int,
    max_width: int,
    max_height: int,
    min_size: int,
) -> ImageFont.FreeTypeFont:
    """
    Get a font that fits the text within the given box.

    Iteratively reduces font size until text fits or min_size is reached.

    Args:
        text: Text to fit
        book: Typeface to size
        size: Preferred font size
        max_width: Maximum allowed width in pixels
        max_height: Maximum allowed line height in pixels
        min_size: Minimum font size to use

    Returns:
        Font that fits the text (or min_size font if nothing fits)
    """
    current_size = size
    font = book.get(current_size)

    # Find the largest font size that fits
    while not fits(text, font, max_width, max_height) and current_size > min_size:
        current_size = max(current_size - FONT_SIZE_STEP, min_size)
        font = book.get(current_size)

    return font


def truncate_to_width(text: str, font: ImageFont.FreeTypeFont, max_width: int, book: FontBook) -> str:
    """
    Drop trailing characters and append an ellipsis until the text fits.

    Returns the text unchanged if it already fits, and an empty string if not
    even the ellipsis fits.
    """
    if get_text_size(text, font)[0] <= max_width:
        return text

    ellipsis = ELLIPSIS if book.has_glyph(ELLIPSIS) else ASCII_ELLIPSIS
    kept = text
    while kept:
        kept = kept[:-1]
        candidate = kept.rstrip() + ellipsis
        if get_text_size(candidate, font)[0] <= max_width:
            return candidate
    return ""
