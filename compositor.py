"""
Draws the location label onto a private copy of an advert template.

Overflow policy: the font is shrunk in FONT_SIZE_STEP steps down to the box's
minimum size; if the label still does not fit, it is truncated with an
ellipsis. Text is drawn on a transparent layer the size of the text box, so
nothing can land outside the box.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont

from errors import CompositionFailure, TemplateLoadError
from image_utils import (
    FontBook,
    fix_rtl,
    fits,
    get_fitted_font,
    get_text_size,
    replace_missing_glyphs,
    truncate_to_width,
)
from templates import Template, TextBox

logger = logging.getLogger(__name__)

_H_ANCHORS = {"left": "l", "center": "m", "right": "r"}
_V_ANCHORS = {"top": "a", "middle": "m", "bottom": "d"}


@dataclass(frozen=True)
class Layout:
    """Result of fitting a label into a text box."""

    text: str
    font_size: int
    shrunk: bool
    truncated: bool


def format_label(template: Template, location: str) -> str:
    """Apply the template's case and prefix to a location name."""
    if template.text_case == "upper":
        location = location.upper()
    return f"{template.text_prefix}{location}"


def _anchor_point(box: TextBox) -> Tuple[Tuple[int, int], str]:
    x = {"left": 0, "center": box.width // 2, "right": box.width}[box.align]
    y = {"top": 0, "middle": box.height // 2, "bottom": box.height}[box.valign]
    return (x, y), _H_ANCHORS[box.align] + _V_ANCHORS[box.valign]


class TextCompositor:
    """Renders labels with one shared typeface."""

    def __init__(self, fonts: FontBook, placeholder: str = "?"):
        self.fonts = fonts
        self.placeholder = placeholder

    def check_template(self, template: Template) -> None:
        """
        Ensure one line of text at the minimum font size fits the box height.

        Raises:
            TemplateLoadError: If the box is too short for this font
        """
        box = template.text_box
        line_height = sum(self.fonts.get(box.min_font_size).getmetrics())
        if line_height > box.height:
            raise TemplateLoadError(
                f"{template.name}: text box height {box.height}px is less than the "
                f"{line_height}px line height at text_min_size {box.min_font_size}"
            )

    def layout(self, template: Template, label: str) -> Tuple[Layout, ImageFont.FreeTypeFont]:
        """
        Fit `label` into the template's text box.

        Missing glyphs are replaced first, then the font is shrunk, then the
        text is truncated. The same inputs always give the same layout.
        """
        box = template.text_box
        text = fix_rtl(label) if template.rtl else label
        text = replace_missing_glyphs(text, self.fonts, self.placeholder)

        font = get_fitted_font(
            text, self.fonts, box.font_size, box.width, box.height, box.min_font_size,
        )
        truncated = False
        if not fits(text, font, box.width, box.height):
            fitted = truncate_to_width(text, font, box.width, self.fonts)
            truncated = fitted != text
            text = fitted

        # Unreachable for templates that passed check_template
        if get_text_size(text, font)[1] > box.height:
            raise CompositionFailure(
                f"{template.name}: {font.size}px line does not fit a {box.height}px text box"
            )

        return Layout(text, font.size, font.size != box.font_size, truncated), font

    def render(self, template: Template, label: str) -> Image.Image:
        """
        Composite `label` onto a fresh copy of the template.

        Every frame of a sprite sheet receives the same label. The returned
        image always has the template's dimensions.

        Raises:
            CompositionFailure: If Pillow fails to lay out or draw the text
        """
        box = template.text_box
        try:
            layout, font = self.layout(template, label)

            layer = Image.new("RGBA", (box.width, box.height), (0, 0, 0, 0))
            if layout.text:
                xy, anchor = _anchor_point(box)
                ImageDraw.Draw(layer).text(xy, layout.text, font=font, fill=box.color, anchor=anchor)

            image = template.image.copy()
            for frame in range(template.frames):
                image.alpha_composite(layer, (box.x, box.y + frame * template.frame_height))
        except (OSError, ValueError, TypeError) as e:
            raise CompositionFailure(f"failed to render {label!r} on {template.name}: {e}") from e

        if layout.shrunk or layout.truncated:
            logger.debug(
                "%s: fitted %r at %dpx%s",
                template.name, label, layout.font_size, " (truncated)" if layout.truncated else "",
            )
        return image
