"""Output file name templates for extracted patches.

A template holds at most one integer placeholder, either boost-style
``%1%`` or printf-style ``%d`` / ``%05d``. ``%%`` is a literal percent
sign. Without a placeholder the index and extension are appended:
``patches/person`` becomes ``patches/person0.png``, ``patches/person1.png``...
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from pascalpatch.errors import OutputTemplateError

# One alternative per token kind, so a single left-to-right scan classifies
# every '%' in the template.
_TOKEN = re.compile(
    r"(?P<escape>%%)"
    r"|(?P<positional>%[0-9]+%)"
    r"|(?P<printf>%(?P<flags>[-+ 0#]*)(?P<width>[0-9]*)[di])"
)


def _printf_spec(flags: str, width: str) -> str:
    """Translate printf integer flags/width into a ``format()`` spec."""
    if "-" in flags:
        align = "<"
        zero = ""
    else:
        align = ""
        zero = "0" if "0" in flags else ""
    sign = "+" if "+" in flags else (" " if " " in flags else "")
    return f"{align}{sign}{zero}{width}d"


@dataclass(frozen=True)
class OutputTemplate:
    """Validated output name template. Build with ``OutputTemplate.parse``."""

    template: str
    prefix: str
    suffix: str
    spec: str  # format spec applied to the index, e.g. "05d"

    @classmethod
    def parse(cls, template: str | Path, extension: str = "png") -> OutputTemplate:
        """Validate ``template`` and split it around its placeholder.

        Raises:
            OutputTemplateError: if the template has more than one placeholder.
        """
        template = str(template)
        pieces: list[str] = []
        placeholders: list[tuple[int, str]] = []  # (piece index, format spec)
        last = 0
        for match in _TOKEN.finditer(template):
            pieces.append(template[last : match.start()])
            if match.group("escape"):
                pieces.append("%")
            elif match.group("positional"):
                placeholders.append((len(pieces), "d"))
                pieces.append("")
            else:
                placeholders.append((len(pieces), _printf_spec(match.group("flags"), match.group("width"))))
                pieces.append("")
            last = match.end()
        pieces.append(template[last:])

        if len(placeholders) > 1:
            raise OutputTemplateError(template, len(placeholders))

        if not placeholders:
            return cls(
                template=template,
                prefix="".join(pieces),
                suffix=f".{extension.lstrip('.')}",
                spec="d",
            )

        at, spec = placeholders[0]
        return cls(
            template=template,
            prefix="".join(pieces[:at]),
            suffix="".join(pieces[at + 1 :]),
            spec=spec,
        )

    def render(self, index: int) -> Path:
        """Concrete output path for the patch with global write index ``index``."""
        return Path(f"{self.prefix}{format(index, self.spec)}{self.suffix}")

    @property
    def directory(self) -> Path:
        """Directory the rendered paths live in (``.`` for bare names)."""
        return self.render(0).parent
