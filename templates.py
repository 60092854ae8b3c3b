"""
Advert templates: decoded PNG images plus where and how to draw the label.

All templates are loaded and validated once at startup. At request time the
store only hands out already-validated, immutable Template objects.
"""

import itertools
import logging
import os
import random
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from errors import ConfigError, TemplateLoadError, TemplateNotFound

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int, int]

ALIGNMENTS = ("left", "center", "right")
VERTICAL_ALIGNMENTS = ("top", "middle", "bottom")
TEXT_CASES = ("default", "upper")
SELECTION_POLICIES = ("fixed", "round_robin", "random")


@dataclass(frozen=True)
class TextBox:
    """Text placement inside one frame of a template."""

    x: int
    y: int
    width: int
    height: int
    font_size: int
    min_font_size: int
    color: Color = (255, 255, 255, 255)
    align: str = "left"
    valign: str = "top"


@dataclass(frozen=True)
class Template:
    name: str
    image: Image.Image
    text_box: TextBox
    # Vertically stacked animation frames in the sprite sheet
    frames: int = 1
    text_case: str = "default"
    text_prefix: str = ""
    rtl: bool = False

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def frame_height(self) -> int:
        return self.image.height // self.frames


def _parse_color(value: Any) -> Color:
    if not isinstance(value, (list, tuple)) or len(value) not in (3, 4):
        raise ValueError(f"text_color must be 3 or 4 integers, got {value!r}")
    channels = [int(c) for c in value]
    if any(c < 0 or c > 255 for c in channels):
        raise ValueError(f"text_color channels must be within 0-255, got {value!r}")
    if len(channels) == 3:
        channels.append(255)
    return tuple(channels)  # type: ignore[return-value]


def _choice(definition: Dict[str, Any], key: str, allowed: Iterable[str], default: str) -> str:
    value = str(definition.get(key, default)).lower()
    if value not in allowed:
        raise ValueError(f"{key} must be one of {', '.join(allowed)}, got {value!r}")
    return value


def decode_png(path: str) -> Image.Image:
    """
    Decode a PNG file into a fully loaded RGBA image.

    Raises:
        TemplateLoadError: If the file is unreadable or not a PNG
    """
    try:
        with Image.open(path, formats=["PNG"]) as img:
            img.load()
            return img.convert("RGBA")
    except (OSError, UnidentifiedImageError) as e:
        raise TemplateLoadError(f"failed to decode PNG {path!r}: {e}") from e


def validate_template(template: Template) -> None:
    """
    Check image dimensions, frame layout and text box bounds.

    Raises:
        TemplateLoadError: On the first violated constraint
    """
    width, height = template.size
    box = template.text_box
    name = template.name

    if width <= 0 or height <= 0:
        raise TemplateLoadError(f"{name}: image has empty dimensions {width}x{height}")
    if template.frames < 1:
        raise TemplateLoadError(f"{name}: frames must be at least 1")
    if height % template.frames:
        raise TemplateLoadError(
            f"{name}: image height {height} is not divisible by {template.frames} frames"
        )
    if box.width <= 0 or box.height <= 0:
        raise TemplateLoadError(f"{name}: text box must have positive size")
    if box.x < 0 or box.y < 0 or box.x + box.width > width or box.y + box.height > template.frame_height:
        raise TemplateLoadError(
            f"{name}: text box ({box.x}, {box.y}, {box.width}x{box.height}) "
            f"does not fit in a {width}x{template.frame_height} frame"
        )
    if not 1 <= box.min_font_size <= box.font_size:
        raise TemplateLoadError(f"{name}: need 1 <= text_min_size <= text_size")


def load_template(name: str, definition: Dict[str, Any], base_dir: str = ".") -> Template:
    """
    Build a Template from one adverts-file entry.

    Args:
        name: Advert name (the URL path segment)
        definition: Raw table from the adverts file
        base_dir: Directory that relative image paths are resolved against

    Returns:
        Validated Template

    Raises:
        TemplateLoadError: If the image or any setting is invalid
    """
    if "image" not in definition:
        raise TemplateLoadError(f"{name}: missing 'image'")

    try:
        image_path = os.path.join(base_dir, definition["image"])
    except TypeError as e:
        raise TemplateLoadError(f"{name}: image must be a path, got {definition['image']!r}") from e
    image = decode_png(image_path)

    try:
        font_size = int(definition.get("text_size", 32))
        text_box = TextBox(
            x=int(definition.get("text_x", 0)),
            y=int(definition.get("text_y", 0)),
            width=int(definition.get("text_width", image.width - int(definition.get("text_x", 0)))),
            height=int(definition.get("text_height", font_size * 2)),
            font_size=font_size,
            min_font_size=int(definition.get("text_min_size", max(font_size // 2, 1))),
            color=_parse_color(definition.get("text_color", [255, 255, 255, 255])),
            align=_choice(definition, "text_align", ALIGNMENTS, "left"),
            valign=_choice(definition, "text_valign", VERTICAL_ALIGNMENTS, "top"),
        )
        template = Template(
            name=name,
            image=image,
            text_box=text_box,
            frames=int(definition.get("frames", 1)),
            text_case=_choice(definition, "text_case", TEXT_CASES, "default"),
            text_prefix=str(definition.get("text_prefix", "")),
            rtl=bool(definition.get("text_rtl", False)),
        )
    except (TypeError, ValueError) as e:
        raise TemplateLoadError(f"{name}: {e}") from e

    validate_template(template)
    logger.info("Loaded template %s (%dx%d, %d frame(s))", name, image.width, image.height, template.frames)
    return template


class TemplateStore:
    """
    Immutable, ordered collection of templates with a selection policy.

    Policies:
        fixed:        always the default template (first, unless named)
        round_robin:  cycle through templates in insertion order
        random:       uniform choice from a seeded generator
    """

    def __init__(
        self,
        templates: List[Template],
        policy: str = "fixed",
        default: Optional[str] = None,
        seed: Optional[int] = None,
    ):
        if not templates:
            raise ConfigError("at least one template is required")
        if policy not in SELECTION_POLICIES:
            raise ConfigError(
                f"unknown selection policy {policy!r}, expected one of {', '.join(SELECTION_POLICIES)}"
            )

        self._templates: Dict[str, Template] = {}
        for template in templates:
            if template.name in self._templates:
                raise ConfigError(f"duplicate template name {template.name!r}")
            self._templates[template.name] = template
        self._order: Tuple[Template, ...] = tuple(templates)

        if default is not None and default not in self._templates:
            raise ConfigError(f"default template {default!r} is not defined")
        self._default = self._templates[default] if default else self._order[0]

        self.policy = policy
        self._lock = threading.Lock()
        self._cursor = itertools.cycle(self._order)
        self._random = random.Random(seed)

    @classmethod
    def from_config(
        cls,
        adverts: Dict[str, Dict[str, Any]],
        base_dir: str = ".",
        policy: str = "fixed",
        default: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> "TemplateStore":
        templates = [load_template(name, definition, base_dir) for name, definition in adverts.items()]
        return cls(templates, policy=policy, default=default, seed=seed)

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Template]:
        return iter(self._order)

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def names(self) -> List[str]:
        return [t.name for t in self._order]

    def get(self, name: str) -> Template:
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateNotFound(name) from None

    def select(self) -> Template:
        """Pick a template according to the configured policy."""
        if self.policy == "fixed" or len(self._order) == 1:
            return self._default
        with self._lock:
            if self.policy == "round_robin":
                return next(self._cursor)
            return self._random.choice(self._order)
