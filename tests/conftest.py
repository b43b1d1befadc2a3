import os

import cv2
import numpy as np
import pytest

# Pin settings before the app module builds its default instance.
os.environ["LOG_JSON"] = "false"
os.environ["ENABLE_METRICS"] = "true"
os.environ["MEME_CAPTION_FROM_TITLE"] = "false"
os.environ["MEME_OUTPUT_FILENAME"] = "meme.png"
os.environ["MEME_PNG_COMPRESSION"] = "9"


@pytest.fixture
def make_image_bytes():
    def _make(
        ext: str = ".png",
        size: tuple[int, int] = (48, 64),
        color: tuple[int, ...] = (255, 255, 255),
        channels: int = 3,
    ) -> bytes:
        height, width = size
        image = np.zeros((height, width, channels), dtype=np.uint8)
        image[4 : height // 2, 4 : width // 2] = color
        ok, buf = cv2.imencode(ext, image)
        assert ok
        return buf.tobytes()

    return _make


@pytest.fixture
def png_bytes(make_image_bytes) -> bytes:
    return make_image_bytes(".png")
