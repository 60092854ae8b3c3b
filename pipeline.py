"""
Per-request advert pipeline: client IP -> city label -> template -> PNG.

All dependencies are created once by build_pipeline() and only read while
serving requests, so one RequestPipeline is shared by every worker thread.
"""

import logging
import os
from typing import List, Optional, Tuple, Union

import config
from compositor import TextCompositor, format_label
from encoder import ImageEncoder
from errors import CompositionFailure, PipelineError
from geolocator import Found, GeoLocator, IPAddress
from image_utils import load_font
from templates import TemplateStore

logger = logging.getLogger(__name__)


class RequestPipeline:
    def __init__(
        self,
        locator: GeoLocator,
        templates: TemplateStore,
        compositor: TextCompositor,
        encoder: Optional[ImageEncoder] = None,
        fallback_label: str = config.FALLBACK_LABEL,
    ):
        self.locator = locator
        self.templates = templates
        self.compositor = compositor
        self.encoder = encoder or ImageEncoder()
        self.fallback_label = fallback_label

    def resolve_label(self, client_ip: Union[str, IPAddress]) -> str:
        """City name for the client, or the fallback label when unknown."""
        result = self.locator.lookup(client_ip)
        if isinstance(result, Found):
            return result.label
        logger.debug("No city for %s (%s), using fallback label", client_ip, result.reason)
        return self.fallback_label

    def handle(
        self,
        client_ip: Union[str, IPAddress],
        template_name: Optional[str] = None,
    ) -> Tuple[str, bytes]:
        """
        Build the advert image for one request.

        Args:
            client_ip: Address of the requesting client
            template_name: Named template, or None to use the selection policy

        Returns:
            (content_type, image bytes)

        Raises:
            TemplateNotFound: If template_name is not defined
            PipelineError: If compositing or encoding fails
        """
        location = self.resolve_label(client_ip)
        template = self.templates.get(template_name) if template_name else self.templates.select()
        label = format_label(template, location)

        try:
            image = self.compositor.render(template, label)
        except PipelineError:
            raise
        except Exception as e:
            raise CompositionFailure(f"unexpected error rendering {template.name}: {e}") from e

        body = self.encoder.encode(image)
        logger.info("hit %s: %r (%d bytes)", template.name, label, len(body))
        return self.encoder.content_type, body


def build_pipeline(
    db_path: str = config.GEOIP_DB_PATH,
    adverts_path: str = config.ADVERTS_CONFIG,
    font_path: str = config.FONT_PATH,
    locales: Optional[List[str]] = None,
    fallback_label: str = config.FALLBACK_LABEL,
    policy: str = config.SELECTION_POLICY,
    default_template: Optional[str] = config.DEFAULT_TEMPLATE,
    seed: Optional[int] = config.SELECTION_SEED,
) -> RequestPipeline:
    """
    Load the database, font and templates.

    Any failure raises a StartupError subclass; the service must not start.
    """
    adverts = config.load_adverts(adverts_path)
    templates = TemplateStore.from_config(
        adverts,
        base_dir=os.path.dirname(os.path.abspath(adverts_path)),
        policy=policy,
        default=default_template,
        seed=seed,
    )
    logger.info("Done loading %d template(s)", len(templates))

    fonts = load_font(font_path)
    compositor = TextCompositor(fonts, placeholder=config.PLACEHOLDER_GLYPH)
    for template in templates:
        compositor.check_template(template)

    locator = GeoLocator.open(db_path, locales or config.GEOIP_LOCALES)

    return RequestPipeline(
        locator=locator,
        templates=templates,
        compositor=compositor,
        encoder=ImageEncoder(optimize=config.PNG_OPTIMIZE),
        fallback_label=fallback_label,
    )
