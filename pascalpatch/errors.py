"""Error types for annotation parsing, patch extraction and the pipeline."""

from __future__ import annotations

from pathlib import Path


class PascalPatchError(Exception):
    """Base exception for pascalpatch."""


class ParseError(PascalPatchError):
    """Raised when an annotation record does not match the grammar."""

    def __init__(
        self,
        reason: str,
        *,
        file: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.reason = reason
        self.file = file
        self.line = line
        self.column = column
        super().__init__(self._format())

    def _format(self) -> str:
        where = f" at line {self.line}, column {self.column}" if self.line is not None else ""
        prefix = f"failed to parse annotations in {self.file}: " if self.file is not None else ""
        return f"{prefix}{self.reason}{where}"

    def with_file(self, file: Path) -> ParseError:
        """Return a copy of this error that names the offending annotation file."""
        return ParseError(self.reason, file=file, line=self.line, column=self.column)


class ImageLoadError(PascalPatchError):
    """Raised when a source image cannot be decoded or decodes to nothing."""

    def __init__(self, file: Path, message: str = "failed to read image") -> None:
        self.file = file
        super().__init__(f"{message} {file}")


class ImageBoundsError(PascalPatchError):
    """Raised when no valid crop window can be formed for an object."""

    def __init__(self, object_id: int, message: str, file: Path | None = None) -> None:
        self.object_id = object_id
        self.message = message
        self.file = file
        where = f" in {file}" if file is not None else ""
        super().__init__(f"object {object_id}{where}: {message}")

    def with_file(self, file: Path) -> ImageBoundsError:
        return ImageBoundsError(self.object_id, self.message, file=file)


class PatchWriteError(PascalPatchError):
    """Raised when an extracted patch cannot be written."""

    def __init__(self, file: Path) -> None:
        self.file = file
        super().__init__(f"failed to write patch {file}")


class OutputTemplateError(PascalPatchError):
    """Raised before processing when the output file name template is invalid."""

    def __init__(self, template: str, placeholders: int) -> None:
        self.template = template
        self.placeholders = placeholders
        super().__init__(
            f"output file name format must contain exactly one placeholder, "
            f"found {placeholders} in {template!r}"
        )


class InputStreamError(PascalPatchError):
    """Raised after a run when the annotation listing failed mid-read."""

    def __init__(self, cause: BaseException | None = None) -> None:
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"an error occurred while reading from input{detail}")


class StageError(PascalPatchError):
    """Raised when a pipeline stage fails with an unexpected exception."""

    def __init__(self, stage: str, file: Path, cause: BaseException) -> None:
        self.stage = stage
        self.file = file
        self.cause = cause
        super().__init__(f"{stage} stage failed for {file}: {cause}")
