from __future__ import annotations


class FeatureError(Exception):
    """Base class for fatal feature pipeline failures."""


class StructuralError(FeatureError):
    """A required file or directory is missing."""


class SchemaError(FeatureError):
    """A manifest or scenarios document is malformed or lacks a required field."""


class PackagingError(FeatureError):
    """Archive creation or round-trip verification failed."""
