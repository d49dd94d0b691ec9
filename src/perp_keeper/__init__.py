"""Perp batch keeper: executes revealed perp commitments in batches."""

__version__ = "0.1.0"
