"""Aspect-normalized patch extraction around annotated objects.

Workflow per object:
    1. Grow the bounding box to the output aspect ratio without cropping it
    2. Add context padding, scaled from output pixels to source pixels
    3. Shrink the vertical padding where the window would leave the image
    4. Resample the window into the fixed output size

All window sizes are computed with integer arithmetic so the aspect ratio
is exact up to the truncation of the padding step.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from pascalpatch.config import ExtractionConfig
from pascalpatch.errors import ImageBoundsError
from pascalpatch.types import AnnotatedObject, AnnotationRecord, CropWindow, Patch, Rect

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def aspect_corrected_size(box: Rect, window_width: int, window_height: int) -> tuple[int, int]:
    """Smallest window-aspect size that contains ``box``.

    Two candidates keep one box dimension and grow the other:
    ``A = (w, w*Ht/Wt)`` and ``B = (h*Wt/Ht, h)``. The box aspect is
    compared with the window aspect by cross-multiplication; a box that is
    relatively wider than the window needs A, otherwise B. The chosen
    candidate is always the larger of the two.
    """
    w, h = box.width, box.height
    size_a = (w, w * window_height // window_width)
    size_b = (h * window_width // window_height, h)

    # w/h > Wt/Ht  <=>  w*Ht > h*Wt
    if w * window_height - h * window_width > 0:
        return size_a
    return size_b


def compute_crop_window(
    box: Rect,
    image_height: int,
    config: ExtractionConfig | None = None,
) -> CropWindow:
    """Native-scale window for one bounding box.

    Args:
        box: Object bounding box in source pixels.
        image_height: Number of rows in the source image.
        config: Output size and padding (defaults: 64x128, 16px per side).

    Returns:
        Window centered on the box centroid with the output aspect ratio.
    """
    config = config or ExtractionConfig()
    wt, ht = config.window_width, config.window_height
    center_x, center_y = box.center

    width, height = aspect_corrected_size(box, wt, ht)

    # Padding in the output maps to extra_w source pixels across the width.
    extra_w = width * (2 * config.padding) // wt
    extra_h = extra_w * ht // wt
    new_w, new_h = width + extra_w, height + extra_h

    y = int(center_y)
    top_overflow = y - new_h // 2
    bottom_overflow = image_height - (y + new_h // 2)

    if top_overflow < 0 or bottom_overflow < 0:
        # Not enough room for the full vertical padding: use what the
        # overflowing side has left, never less than the box itself.
        if top_overflow < 0 and bottom_overflow < 0:
            padding_v = min(box.y, image_height - box.bottom)
        elif top_overflow < 0:
            padding_v = box.y
        else:
            padding_v = image_height - box.bottom
        padding_v = max(0, padding_v)
        new_h = height + 2 * padding_v
        new_w = new_h * wt // ht

    return CropWindow(center_x=center_x, center_y=center_y, width=new_w, height=new_h)


# ---------------------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------------------


def resample_window(
    image: np.ndarray,
    window: CropWindow,
    out_width: int,
    out_height: int,
) -> np.ndarray:
    """Resample ``window`` of ``image`` into an ``out_width x out_height`` buffer.

    Downsampling goes through an intermediate native-scale crop followed by
    area averaging; upsampling uses a single bicubic warp. Pixels outside
    the image are reflected from its border.
    """
    if window.area > out_width * out_height:
        crop = cv2.warpAffine(
            image,
            window.affine_matrix(window.width, window.height),
            (window.width, window.height),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_REFLECT,
        )
        return cv2.resize(crop, (out_width, out_height), interpolation=cv2.INTER_AREA)

    return cv2.warpAffine(
        image,
        window.affine_matrix(out_width, out_height),
        (out_width, out_height),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_REFLECT,
    )


# ---------------------------------------------------------------------------
# PatchExtractor
# ---------------------------------------------------------------------------


class PatchExtractor:
    """Extract one fixed-size patch per annotated object.

    Stateless apart from its configuration, so a single instance can serve
    many pipeline workers at once.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    def extract(self, record: AnnotationRecord, image: np.ndarray) -> list[Patch]:
        """Extract patches for ``record.objects`` in order."""
        return [self.extract_object(obj, image) for obj in record.objects]

    def extract_object(self, obj: AnnotatedObject, image: np.ndarray) -> Patch:
        rows = image.shape[0]
        window = compute_crop_window(obj.bounding_box, rows, self.config)
        if window.width <= 0 or window.height <= 0:
            raise ImageBoundsError(
                obj.id,
                f"bounding box {obj.bounding_box} yields an empty "
                f"{window.width}x{window.height} window",
            )

        patch = resample_window(image, window, self.config.window_width, self.config.window_height)
        logger.debug(
            "Object %d (%s): window %dx%d at (%.1f, %.1f)",
            obj.id, obj.class_name, window.width, window.height,
            window.center_x, window.center_y,
        )
        return Patch(image=patch, object_id=obj.id, class_name=obj.class_name, window=window)
