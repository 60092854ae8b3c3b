"""Serialization of rendered adverts for the HTTP response."""

from io import BytesIO

from PIL import Image

from errors import EncodeFailure


class ImageEncoder:
    """Encodes images as PNG."""

    format = "PNG"
    content_type = "image/png"

    def __init__(self, optimize: bool = False):
        self.optimize = optimize

    def encode(self, image: Image.Image) -> bytes:
        """
        Encode `image` to PNG bytes.

        Raises:
            EncodeFailure: If Pillow cannot serialize the image
        """
        buffer = BytesIO()
        try:
            image.save(buffer, format=self.format, optimize=self.optimize)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeFailure(f"error encoding {self.format}: {e}") from e
        return buffer.getvalue()
