"""Presentation adapter (HTTP)."""
