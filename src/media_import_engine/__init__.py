"""Bulk media import engine: scan an S3-compatible bucket and import objects into a video catalog."""

__version__ = "0.1.0"

__all__ = ["__version__"]
