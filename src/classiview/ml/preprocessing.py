"""Image preprocessing: decoding, orientation, size validation, model input.

Model input follows the Teachable Machine convention: center crop to a
square, resize to the model's input size, scale pixels to [-1, 1].
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Literal

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from classiview.errors import ImageDecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class ImagePreprocessor:
    """Decodes images and converts them into model input tensors."""

    def __init__(self, max_image_pixels: int) -> None:
        self._max_image_pixels = max_image_pixels

    def decode_image(self, image_bytes: bytes) -> NDArray[np.uint8]:
        """Decode raw image bytes into an RGB uint8 numpy array.

        Args:
            image_bytes: Raw file bytes (any format Pillow can read).

        Returns:
            HxWx3 RGB uint8 numpy array.

        Raises:
            ImageDecodeError: If the image cannot be decoded or exceeds size limits.
        """
        if not image_bytes:
            raise ImageDecodeError("Empty image")

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                width, height = img.size
                if width * height > self._max_image_pixels:
                    raise ImageDecodeError(
                        f"Image too large: {width}x{height} exceeds {self._max_image_pixels} pixels"
                    )
                oriented = ImageOps.exif_transpose(img)
                rgb = oriented.convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"Unsupported or corrupt image: {exc}") from exc
        except OSError as exc:
            # Truncated files fail here, after the header was readable.
            raise ImageDecodeError(f"Cannot decode image: {exc}") from exc

        logger.debug("Decoded %dx%d image", rgb.width, rgb.height)
        return np.asarray(rgb, dtype=np.uint8)

    @staticmethod
    def to_model_input(
        image: NDArray[np.uint8],
        size: int,
        layout: Literal["NHWC", "NCHW"] = "NHWC",
    ) -> NDArray[np.float32]:
        """Prepare an image for the classifier.

        Args:
            image: HxWx3 RGB uint8 array.
            size: Square edge length expected by the model.
            layout: Tensor layout of the model input.

        Returns:
            1xSxSx3 (or 1x3xSxS) float32 tensor scaled to [-1, 1].
        """
        square = center_crop(image)
        resized = Image.fromarray(square).resize((size, size), Image.Resampling.BILINEAR)
        tensor = np.asarray(resized, dtype=np.float32) / 127.5 - 1.0
        if layout == "NCHW":
            tensor = tensor.transpose(2, 0, 1)
        return tensor[np.newaxis, ...]


def center_crop(image: NDArray[np.uint8]) -> NDArray[np.uint8]:
    """Crop the largest centered square out of an HxWxC array."""
    height, width = image.shape[:2]
    edge = min(height, width)
    top = (height - edge) // 2
    left = (width - edge) // 2
    return image[top : top + edge, left : left + edge]
