"""HTTP API route handlers."""

from . import insights, transformations

__all__ = ["insights", "transformations"]
