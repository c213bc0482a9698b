"""Shared test fixtures for pascalpatch."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import cv2
import numpy as np
import pytest

SAMPLE_ANNOTATION = """\
# PASCAL Annotation Version 1.00

Image filename : "Train/pos/crop_000010.png"
Image size (X x Y x C) : 594 x 720 x 3
Database : "The INRIA Rennes Person Database"
Objects with ground truth : 2 { "PASperson" "PASpersonWalking" }

# Note that there might be other objects in the image
# for which ground truth data has not been provided.

# Top left pixel co-ordinates : (0, 0)

# Details for object 1 ("PASperson")
# Center point -- not available in other PASCAL databases -- refers
# to person head center
Original label for object 1 "PASperson" : "UprightPerson"
Center point on object 1 "PASperson" (X, Y) : (341, 217)
Bounding box for object 1 "PASperson" (Xmin, Ymin) - (Xmax, Ymax) : (261, 109) - (511, 705)

# Details for object 2 ("PASpersonWalking")
Original label for object 2 "PASpersonWalking" : "Walking Person"
Center point on object 2 "PASpersonWalking" (X, Y) : (100, 120)
Bounding box for object 2 "PASpersonWalking" (Xmin, Ymin) - (Xmax, Ymax) : (40, 60) - (160, 420)
"""


def build_annotation(
    image_path: str,
    image_size: tuple[int, int, int],
    objects: list[tuple[int, str, str, tuple[int, int], tuple[int, int, int, int]]],
    class_names: list[str] | None = None,
) -> str:
    """Render a PASCAL Annotation Version 1.00 record.

    ``objects`` holds (id, class name, label, center, (x1, y1, x2, y2)).
    """
    if class_names is None:
        class_names = sorted({obj[1] for obj in objects})
    width, height, channels = image_size
    names = " ".join(f'"{n}"' for n in class_names)
    lines = [
        "# PASCAL Annotation Version 1.00",
        "",
        f'Image filename : "{image_path}"',
        f"Image size (X x Y x C) : {width} x {height} x {channels}",
        'Database : "Synthetic test database"',
        f"Objects with ground truth : {len(class_names)} {{ {names} }}",
        "",
        "# Top left pixel co-ordinates : (0, 0)",
        "",
    ]
    for object_id, name, label, (cx, cy), (x1, y1, x2, y2) in objects:
        lines += [
            f'# Details for object {object_id} ("{name}")',
            f'Original label for object {object_id} "{name}" : "{label}"',
            f'Center point on object {object_id} "{name}" (X, Y) : ({cx}, {cy})',
            f'Bounding box for object {object_id} "{name}" (Xmin, Ymin) - (Xmax, Ymax) : '
            f"({x1}, {y1}) - ({x2}, {y2})",
            "",
        ]
    return "\n".join(lines)


def make_image(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Deterministic BGR test image with a gradient and some texture."""
    rng = np.random.default_rng(seed)
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :, 0] = xs[None, :].astype(np.uint8)
    img[:, :, 1] = ys[:, None].astype(np.uint8)
    img[:, :, 2] = rng.integers(0, 255, (height, width), dtype=np.uint8)
    return img


@pytest.fixture
def sample_text() -> str:
    """A realistic two-object annotation record."""
    return SAMPLE_ANNOTATION


@pytest.fixture
def annotation_builder() -> Callable[..., str]:
    """The ``build_annotation`` helper, for tests that need custom records."""
    return build_annotation


@pytest.fixture
def write_record(tmp_path) -> Callable[..., Path]:
    """Factory writing an annotation file and (optionally) its image under tmp_path.

    Returns the annotation path relative to tmp_path.
    """

    def _write(
        name: str,
        objects: list[tuple[int, str, str, tuple[int, int], tuple[int, int, int, int]]],
        image_size: tuple[int, int] = (300, 400),
        with_image: bool = True,
        seed: int = 0,
    ) -> Path:
        width, height = image_size
        image_rel = f"Images/{name}.png"
        annotation_rel = Path("Annotations") / f"{name}.txt"
        (tmp_path / "Annotations").mkdir(exist_ok=True)
        (tmp_path / "Images").mkdir(exist_ok=True)
        (tmp_path / annotation_rel).write_text(
            build_annotation(image_rel, (width, height, 3), objects)
        )
        if with_image:
            cv2.imwrite(str(tmp_path / image_rel), make_image(width, height, seed))
        return annotation_rel

    return _write


@pytest.fixture
def mini_dataset(write_record, tmp_path) -> Path:
    """Three records with 1, 2 and 3 objects; returns the listing path."""
    person = "PASperson"
    paths = [
        write_record("a", [(1, person, "UprightPerson", (100, 200), (50, 50, 150, 350))]),
        write_record(
            "b",
            [
                (1, person, "UprightPerson", (60, 100), (30, 20, 90, 180)),
                (2, person, "UprightPerson", (200, 250), (170, 150, 230, 390)),
            ],
            seed=1,
        ),
        write_record(
            "c",
            [
                (1, person, "UprightPerson", (40, 60), (10, 0, 70, 120)),
                (2, person, "UprightPerson", (150, 200), (120, 100, 180, 300)),
                (3, person, "UprightPerson", (250, 330), (220, 260, 280, 400)),
            ],
            seed=2,
        ),
    ]
    listing = tmp_path / "listing.txt"
    listing.write_text("\n".join(str(p) for p in paths) + "\n")
    return listing
