"""Issue tracker account and permission service."""

__version__ = "1.0.0"
