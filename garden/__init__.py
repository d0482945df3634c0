"""Dream garden placement service."""

__version__ = "0.1.0"
