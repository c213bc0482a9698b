"""Core data types for pascalpatch.

Every module in the library produces/consumes these types:
- AnnotationParser builds AnnotationRecord values
- PatchExtractor turns a record plus its decoded image into Patch objects
- PipelineOrchestrator moves them between stages and updates PipelineCounters
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

import numpy as np


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Point:
    """An integer 2D point in pixel coordinates."""

    x: int
    y: int


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by its top-left and bottom-right corners.

    Width and height are ``bottom_right - top_left``, so a box from (50, 50)
    to (150, 350) is 100 wide and 300 tall.
    """

    top_left: Point
    bottom_right: Point

    def __post_init__(self) -> None:
        if self.bottom_right.x < self.top_left.x or self.bottom_right.y < self.top_left.y:
            raise ValueError(
                f"Bottom-right corner {self.bottom_right} lies above or left of "
                f"top-left corner {self.top_left}"
            )

    @classmethod
    def from_corners(cls, x1: int, y1: int, x2: int, y2: int) -> Rect:
        return cls(Point(x1, y1), Point(x2, y2))

    @property
    def x(self) -> int:
        return self.top_left.x

    @property
    def y(self) -> int:
        return self.top_left.y

    @property
    def width(self) -> int:
        return self.bottom_right.x - self.top_left.x

    @property
    def height(self) -> int:
        return self.bottom_right.y - self.top_left.y

    @property
    def bottom(self) -> int:
        return self.bottom_right.y

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        """Real-valued centroid (x, y)."""
        return (
            (self.top_left.x + self.bottom_right.x) / 2.0,
            (self.top_left.y + self.bottom_right.y) / 2.0,
        )

    def contains(self, other: Rect) -> bool:
        return (
            self.top_left.x <= other.top_left.x
            and self.top_left.y <= other.top_left.y
            and other.bottom_right.x <= self.bottom_right.x
            and other.bottom_right.y <= self.bottom_right.y
        )


@dataclass(frozen=True)
class ImageSize:
    """Declared image dimensions. Only width and height are used downstream."""

    width: int
    height: int
    channels: int


# ---------------------------------------------------------------------------
# Annotation records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnnotatedObject:
    """One labeled region of interest inside an image."""

    id: int
    class_name: str
    label: str
    center: Point
    bounding_box: Rect


@dataclass(frozen=True)
class AnnotationRecord:
    """Parsed form of one PASCAL Annotation Version 1.00 file.

    ``objects`` keeps parse order, which is also the output order of the
    patches extracted from this record.
    """

    image_path: Path
    image_size: ImageSize
    database: str
    class_names: tuple[str, ...]
    reference_top_left: Point
    objects: tuple[AnnotatedObject, ...]

    def resolve_image_path(self, base_dir: Path) -> Path:
        """Resolve the (relative) image path against the dataset base directory."""
        return base_dir / self.image_path


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CropWindow:
    """Native-scale sampling window around one object.

    ``center`` is real-valued; ``width``/``height`` are the integer window
    extents in source pixels before resampling to the output size.
    """

    center_x: float
    center_y: float
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Window extent as (x_min, y_min, x_max, y_max) in source pixels."""
        return (
            self.center_x - self.width / 2.0,
            self.center_y - self.height / 2.0,
            self.center_x + self.width / 2.0,
            self.center_y + self.height / 2.0,
        )

    def contains(self, rect: Rect) -> bool:
        x_min, y_min, x_max, y_max = self.bounds
        return (
            x_min <= rect.top_left.x
            and y_min <= rect.top_left.y
            and rect.bottom_right.x <= x_max
            and rect.bottom_right.y <= y_max
        )

    def affine_matrix(self, out_width: int, out_height: int) -> np.ndarray:
        """2x3 transform mapping the window onto an ``out_width x out_height`` buffer.

        Scale is applied after translating the window's top-left corner to
        the origin, so x and y scale independently.
        """
        sx = out_width / self.width
        sy = out_height / self.height
        tx = -(self.center_x - self.width / 2.0)
        ty = -(self.center_y - self.height / 2.0)
        return np.array(
            [[sx, 0.0, sx * tx], [0.0, sy, sy * ty]],
            dtype=np.float32,
        )


@dataclass
class Patch:
    """A fixed-size resampled image extracted around one annotated object."""

    image: np.ndarray  # out_height x out_width [x channels]
    object_id: int
    class_name: str
    window: CropWindow


# ---------------------------------------------------------------------------
# Pipeline counters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CounterSnapshot:
    """Immutable copy of the pipeline counters at one instant."""

    discovered: int
    parsed: int
    objects: int
    written: int

    @property
    def percent_done(self) -> int | None:
        """Integer completion percentage, or None before anything was discovered."""
        if self.discovered == 0:
            return None
        return self.parsed * 100 // self.discovered


class PipelineCounters:
    """Thread-safe, increment-only counters shared by the pipeline stages.

    Each counter has exactly one writer stage:
        discovered: discover stage, once per listing line
        objects:    load stage, by the number of objects in the record
        parsed:     extract stage, once per record whose objects were processed
        written:    write stage, once per patch
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._discovered = 0
        self._parsed = 0
        self._objects = 0
        self._written = 0

    @property
    def discovered(self) -> int:
        return self._discovered

    @property
    def parsed(self) -> int:
        return self._parsed

    @property
    def objects(self) -> int:
        return self._objects

    @property
    def written(self) -> int:
        return self._written

    def increment_discovered(self) -> int:
        with self._lock:
            self._discovered += 1
            return self._discovered

    def increment_parsed(self) -> int:
        with self._lock:
            self._parsed += 1
            return self._parsed

    def add_objects(self, count: int) -> int:
        if count < 0:
            raise ValueError(f"Object count must be non-negative, got {count}")
        with self._lock:
            self._objects += count
            return self._objects

    def increment_written(self) -> int:
        """Count one written patch and return its output index (pre-increment value)."""
        with self._lock:
            index = self._written
            self._written += 1
            return index

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                discovered=self._discovered,
                parsed=self._parsed,
                objects=self._objects,
                written=self._written,
            )
