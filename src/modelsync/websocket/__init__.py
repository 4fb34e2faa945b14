"""Collaboration channel and typed protocol."""
