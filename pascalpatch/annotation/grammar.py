"""Recursive-descent grammar for PASCAL Annotation Version 1.00 records.

A record looks like this (INRIA person dataset)::

    # PASCAL Annotation Version 1.00

    Image filename : "Train/pos/crop_000010.png"
    Image size (X x Y x C) : 594 x 720 x 3
    Database : "The INRIA Rennes Person Database"
    Objects with ground truth : 1 { "PASperson" }

    # Top left pixel co-ordinates : (0, 0)

    # Details for object 1 ("PASperson")
    Original label for object 1 "PASperson" : "UprightPerson"
    Center point on object 1 "PASperson" (X, Y) : (341, 217)
    Bounding box for object 1 "PASperson" (Xmin, Ymin) - (Xmax, Ymax) : (261, 109) - (511, 705)

Each grammar rule is a function taking a ``_Scanner`` and returning the value
it recognized. Whitespace is skipped before every token. Free text is
allowed in two places only: before the top-left coordinate line and before
each object block.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, TextIO, TypeVar

from pascalpatch.config import ParserConfig
from pascalpatch.errors import ParseError
from pascalpatch.types import AnnotatedObject, AnnotationRecord, ImageSize, Point, Rect

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMMENT_START = "#"
HEADER = "PASCAL Annotation Version 1.00"
IMAGE_FILENAME = "Image filename :"
IMAGE_SIZE = "Image size (X x Y x C) :"
DATABASE = "Database :"
OBJECTS_WITH_GROUND_TRUTH = "Objects with ground truth :"
TOP_LEFT = "Top left pixel co-ordinates :"
ORIGINAL_LABEL = "Original label for object"
CENTER_POINT = "Center point on object"
CENTER_POINT_AXES = "(X, Y)"
BOUNDING_BOX = "Bounding box for object"
BOUNDING_BOX_AXES = "(Xmin, Ymin) - (Xmax, Ymax)"

_INT = re.compile(r"[+-]?[0-9]+")
_UINT = re.compile(r"[0-9]+")


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class _Scanner:
    """Cursor over the record text with whitespace-skipping token readers."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def skip_ws(self) -> None:
        text, pos = self.text, self.pos
        while pos < len(text) and text[pos].isspace():
            pos += 1
        self.pos = pos

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def error(self, reason: str, pos: int | None = None) -> ParseError:
        pos = self.pos if pos is None else pos
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        return ParseError(reason, line=line, column=column)

    def literal(self, lit: str) -> None:
        self.skip_ws()
        if not self.text.startswith(lit, self.pos):
            raise self.error(f"expected {lit!r}")
        self.pos += len(lit)

    def peek(self, lit: str) -> bool:
        self.skip_ws()
        return self.text.startswith(lit, self.pos)

    def integer(self, signed: bool = True) -> int:
        self.skip_ws()
        pattern = _INT if signed else _UINT
        match = pattern.match(self.text, self.pos)
        if match is None:
            raise self.error("expected an integer" if signed else "expected an unsigned integer")
        self.pos = match.end()
        return int(match.group())

    def quoted(self) -> str:
        """Double-quoted, non-empty string. Inner whitespace is kept verbatim."""
        self.skip_ws()
        start = self.pos
        if not self.text.startswith('"', start):
            raise self.error("expected a quoted string")
        end = self.text.find('"', start + 1)
        if end < 0:
            raise self.error("unterminated quoted string", start)
        if end == start + 1:
            raise self.error("empty quoted string", start)
        self.pos = end + 1
        return self.text[start + 1 : end]


def _attempt(rule: Callable[[_Scanner], T], scanner: _Scanner) -> T | None:
    """Run ``rule``; on failure rewind the scanner and return None."""
    mark = scanner.pos
    try:
        return rule(scanner)
    except ParseError:
        scanner.pos = mark
        return None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _point(s: _Scanner) -> Point:
    s.literal("(")
    x = s.integer()
    s.literal(",")
    y = s.integer()
    s.literal(")")
    return Point(x, y)


def _rect(s: _Scanner) -> Rect:
    start = s.pos
    top_left = _point(s)
    s.literal("-")
    bottom_right = _point(s)
    try:
        return Rect(top_left, bottom_right)
    except ValueError as e:
        raise s.error(str(e), start) from None


def _header(s: _Scanner) -> None:
    s.literal(COMMENT_START)
    s.literal(HEADER)


def _image_filename(s: _Scanner) -> Path:
    s.literal(IMAGE_FILENAME)
    return Path(s.quoted())


def _image_size(s: _Scanner) -> ImageSize:
    s.literal(IMAGE_SIZE)
    width = s.integer()
    s.literal("x")
    height = s.integer()
    s.literal("x")
    channels = s.integer()
    return ImageSize(width=width, height=height, channels=channels)


def _database(s: _Scanner) -> str:
    s.literal(DATABASE)
    return s.quoted()


def _class_names(s: _Scanner) -> tuple[str, ...]:
    s.literal(OBJECTS_WITH_GROUND_TRUTH)
    s.integer(signed=False)  # declared count, not trusted
    s.literal("{")
    names = [s.quoted()]
    while s.peek('"'):
        names.append(s.quoted())
    s.literal("}")
    return tuple(names)


def _top_left(s: _Scanner) -> Point:
    s.literal(COMMENT_START)
    s.literal(TOP_LEFT)
    return _point(s)


def _skip_to_top_left(s: _Scanner) -> Point:
    """Skip free text char by char until the top-left coordinate line parses."""
    start = s.pos
    while True:
        s.skip_ws()
        if s.at_end():
            raise s.error(f"expected '{COMMENT_START} {TOP_LEFT}'", start)
        mark = s.pos
        point = _attempt(_top_left, s)
        if point is not None:
            return point
        s.pos = mark + 1


def _original_label(s: _Scanner) -> tuple[int, str, str]:
    s.literal(ORIGINAL_LABEL)
    object_id = s.integer(signed=False)
    name = s.quoted()
    s.literal(":")
    return object_id, name, s.quoted()


def _center_point(s: _Scanner) -> tuple[int, str, Point]:
    s.literal(CENTER_POINT)
    object_id = s.integer(signed=False)
    name = s.quoted()
    s.literal(CENTER_POINT_AXES)
    s.literal(":")
    return object_id, name, _point(s)


def _bounding_box(s: _Scanner) -> tuple[int, str, Rect]:
    s.literal(BOUNDING_BOX)
    object_id = s.integer(signed=False)
    name = s.quoted()
    s.literal(BOUNDING_BOX_AXES)
    s.literal(":")
    return object_id, name, _rect(s)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class AnnotationParser:
    """Parse PASCAL Annotation Version 1.00 text into ``AnnotationRecord`` values.

    The parser holds no per-record state and is safe to share between
    threads.
    """

    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or ParserConfig()

    def parse(self, source: str | TextIO) -> AnnotationRecord:
        """Parse one complete record.

        Raises:
            ParseError: if the text does not match the grammar exactly,
                including any trailing non-whitespace input.
        """
        text = source if isinstance(source, str) else source.read()
        s = _Scanner(text)

        _header(s)
        image_path = _image_filename(s)
        image_size = _image_size(s)
        database = _database(s)
        class_names = _class_names(s)
        top_left = _skip_to_top_left(s)
        objects = self._objects(s, class_names)

        s.skip_ws()
        if not s.at_end():
            raise s.error("unexpected trailing input")

        return AnnotationRecord(
            image_path=image_path,
            image_size=image_size,
            database=database,
            class_names=class_names,
            reference_top_left=top_left,
            objects=objects,
        )

    def parse_file(self, path: Path) -> AnnotationRecord:
        """Read and parse an annotation file. Errors name ``path``."""
        try:
            text = Path(path).read_text(encoding=self.config.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"cannot read file ({e})", file=path) from e
        try:
            record = self.parse(text)
        except ParseError as e:
            raise e.with_file(path) from None
        logger.debug("Parsed %s: %d objects", path, len(record.objects))
        return record

    def _objects(self, s: _Scanner, class_names: tuple[str, ...]) -> tuple[AnnotatedObject, ...]:
        objects: list[AnnotatedObject] = []
        while True:
            found = s.text.find(ORIGINAL_LABEL, s.pos)
            if found < 0:
                break
            s.pos = found
            objects.append(self._object(s, class_names))
        if not objects:
            raise s.error(f"expected at least one '{ORIGINAL_LABEL}' block")
        return tuple(objects)

    def _object(self, s: _Scanner, class_names: tuple[str, ...]) -> AnnotatedObject:
        start = s.pos
        label_id, label_name, label = _original_label(s)
        center_id, center_name, center = _center_point(s)
        box_id, box_name, box = _bounding_box(s)

        if self.config.verify_objects:
            if not label_id == center_id == box_id:
                raise s.error(
                    f"object ids disagree: label {label_id}, center {center_id}, "
                    f"bounding box {box_id}",
                    start,
                )
            if not label_name == center_name == box_name:
                raise s.error(
                    f"object {label_id} class names disagree: {label_name!r}, "
                    f"{center_name!r}, {box_name!r}",
                    start,
                )
            if label_name not in class_names:
                raise s.error(
                    f"object {label_id} class {label_name!r} is not listed in "
                    f"'{OBJECTS_WITH_GROUND_TRUTH}'",
                    start,
                )

        return AnnotatedObject(
            id=label_id,
            class_name=label_name,
            label=label,
            center=center,
            bounding_box=box,
        )


def parse_annotation(text: str, config: ParserConfig | None = None) -> AnnotationRecord:
    """Parse one record with a default-configured parser."""
    return AnnotationParser(config).parse(text)
