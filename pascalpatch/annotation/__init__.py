"""Annotation record grammar."""

from pascalpatch.annotation.grammar import AnnotationParser, parse_annotation

__all__ = ["AnnotationParser", "parse_annotation"]
