import logging
from typing import Protocol

import cv2
import numpy as np

from meme_api.errors import ConversionError

logger = logging.getLogger("meme.converter")

# Caption geometry is relative to the image size.
CAPTION_OFFSET_RATIO = 0.10
CAPTION_HEIGHT_RATIO = 0.10
CAPTION_OUTLINE_PX = 4
CAPTION_FILL_BGRA = (0, 128, 255, 255)
CAPTION_OUTLINE_BGRA = (0, 0, 0, 255)
_CAPTION_FONT = cv2.FONT_HERSHEY_SIMPLEX


class ImageConverter(Protocol):
    def convert(self, data: bytes) -> bytes:
        """Return PNG bytes for ``data`` or raise ConversionError."""
        ...


def decode_image(data: bytes) -> np.ndarray:
    """Decode an encoded image of any format OpenCV recognises by content."""
    if not data:
        raise ConversionError("empty image buffer")
    arr = np.frombuffer(data, dtype=np.uint8)
    try:
        image = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    except cv2.error as exc:
        raise ConversionError(f"error decoding image: {exc}") from exc
    if image is None:
        raise ConversionError("error guessing image format: unrecognized or corrupt data")
    return image


def encode_png(image: np.ndarray, compression: int = 9) -> bytes:
    try:
        ok, buf = cv2.imencode(".png", image, [cv2.IMWRITE_PNG_COMPRESSION, compression])
    except cv2.error as exc:
        raise ConversionError(f"error encoding PNG buffer: {exc}") from exc
    if not ok:
        raise ConversionError("error encoding PNG buffer")
    return buf.tobytes()


class PngConverter:
    """Re-encodes any decodable image as PNG at the configured compression level."""

    def __init__(self, compression: int = 9) -> None:
        self.compression = compression

    def convert(self, data: bytes) -> bytes:
        logger.debug("incoming image buffer", extra={"input_bytes": len(data)})
        image = decode_image(data)
        png = encode_png(image, self.compression)
        logger.debug("png encoded", extra={"output_bytes": len(png)})
        return png


def _to_bgra8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint16:
        image = (image // 257).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image.copy()


def draw_caption(image: np.ndarray, text: str) -> np.ndarray:
    """Draw ``text`` near the top-left corner as orange letters with a black outline."""
    canvas = _to_bgra8(image)
    height, width = canvas.shape[:2]
    thickness = max(1, height // 100)
    text_px = max(1, int(height * CAPTION_HEIGHT_RATIO))
    scale = cv2.getFontScaleFromHeight(_CAPTION_FONT, text_px, thickness)
    x = int(width * CAPTION_OFFSET_RATIO)
    y = int(height * CAPTION_OFFSET_RATIO) + text_px

    mask = np.zeros((height, width), dtype=np.uint8)
    cv2.putText(mask, text, (x, y), _CAPTION_FONT, scale, 255, thickness, cv2.LINE_AA)
    size = 2 * CAPTION_OUTLINE_PX + 1
    outline = cv2.dilate(mask, np.ones((size, size), np.uint8))
    canvas[outline > 0] = CAPTION_OUTLINE_BGRA

    # Fill through the mask so the alpha channel stays untouched.
    canvas[mask >= 128] = CAPTION_FILL_BGRA
    return canvas


class CaptionConverter:
    """Runs ``inner`` and then overlays a caption on its PNG output."""

    def __init__(self, inner: ImageConverter, text: str, compression: int = 9) -> None:
        self.inner = inner
        self.text = text
        self.compression = compression

    def convert(self, data: bytes) -> bytes:
        png = self.inner.convert(data)
        image = decode_image(png)
        return encode_png(draw_caption(image, self.text), self.compression)
