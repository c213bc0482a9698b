"""Image codec used by the pipeline's load and write stages."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import cv2
import numpy as np

from pascalpatch.errors import ImageLoadError, PatchWriteError


class ImageCodec(Protocol):
    """Decodes source images and encodes output patches."""

    def read(self, path: Path) -> np.ndarray:
        """Decode ``path``. Must raise ImageLoadError rather than return an empty array."""
        ...

    def write(self, path: Path, image: np.ndarray) -> None:
        """Encode ``image`` to ``path``. Must raise PatchWriteError on failure."""
        ...


class OpenCVImageCodec:
    """ImageCodec backed by ``cv2.imread`` / ``cv2.imwrite``.

    Images are kept in OpenCV's native BGR channel order end to end, so
    patches are written with the same colours they were read with.
    """

    def __init__(self, read_flags: int = cv2.IMREAD_COLOR) -> None:
        self.read_flags = read_flags

    def read(self, path: Path) -> np.ndarray:
        img = cv2.imread(str(path), self.read_flags)
        if img is None or img.size == 0:
            raise ImageLoadError(path)
        return img

    def write(self, path: Path, image: np.ndarray) -> None:
        try:
            ok = cv2.imwrite(str(path), image)
        except cv2.error as e:
            raise PatchWriteError(path) from e
        if not ok:
            raise PatchWriteError(path)
