"""PNG output for decoded images."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image as PILImage

from aptdecode.apt.types import Image
from aptdecode.util.errors import OutputError
from aptdecode.util.logging import get_logger

logger = get_logger(__name__)


def to_pil(image: Image) -> PILImage.Image:
    return PILImage.fromarray(np.ascontiguousarray(image.pixels, dtype=np.uint8))


def write_png(path: str | Path, image: Image) -> Path:
    if image.height == 0:
        raise OutputError("decoded image has no lines", parameter="output")
    target = Path(path)
    try:
        to_pil(image).save(target, format="PNG")
    except OSError as exc:
        raise OutputError(f"cannot write PNG {target}: {exc}", parameter="output") from exc
    logger.info("Saved %s (%dx%d)", target, image.width, image.height)
    return target
