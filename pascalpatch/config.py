"""Configuration models for pascalpatch.

Pydantic v2 models with sensible defaults, so everything works without a
config file.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, model_validator


class ParserConfig(BaseModel):
    """Configuration for the annotation grammar."""

    verify_objects: bool = Field(
        True,
        description=(
            "Require the label, center and bounding-box lines of an object to "
            "agree on id and class name, and the class name to be declared in "
            "'Objects with ground truth'. False merges the three lines as-is."
        ),
    )
    encoding: str = Field("utf-8", description="Text encoding of annotation files")


class ExtractionConfig(BaseModel):
    """Configuration for patch geometry and resampling."""

    window_width: int = Field(64, gt=0, description="Output patch width in pixels")
    window_height: int = Field(128, gt=0, description="Output patch height in pixels")
    padding: int = Field(16, ge=0, description="Context padding per side, in output pixels")

    @model_validator(mode="after")
    def _padding_fits(self) -> ExtractionConfig:
        if 2 * self.padding >= self.window_width:
            raise ValueError(
                f"padding {self.padding} leaves no room inside a "
                f"{self.window_width}px wide window"
            )
        return self


class PipelineConfig(BaseModel):
    """Configuration for the concurrent extraction pipeline."""

    max_tokens: int | None = Field(
        None,
        ge=1,
        description="Max in-flight records and extract workers (None = os.cpu_count())",
    )
    progress_interval: float = Field(0.5, gt=0, description="Progress poll interval in seconds")
    output_extension: str = Field(
        "png", description="Extension appended when the output template has no placeholder"
    )


class PascalPatchConfig(BaseModel):
    """Top-level configuration for pascalpatch."""

    parser: ParserConfig = Field(default_factory=ParserConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> PascalPatchConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    @classmethod
    def default(cls) -> PascalPatchConfig:
        """Return configuration with all defaults."""
        return cls()
