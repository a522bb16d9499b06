"""Layered architecture and feature maps for source repositories."""

__version__ = "0.1.0"
