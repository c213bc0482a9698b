"""pascalpatch: fixed-size object patches from PASCAL Annotation Version 1.00 datasets."""

__version__ = "0.1.0"

from pascalpatch.types import AnnotatedObject, AnnotationRecord, Patch, PipelineCounters

__all__ = ["AnnotatedObject", "AnnotationRecord", "Patch", "PipelineCounters", "__version__"]
