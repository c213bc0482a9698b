"""Patch geometry and resampling."""

from pascalpatch.extract.patches import PatchExtractor, compute_crop_window

__all__ = ["PatchExtractor", "compute_crop_window"]
