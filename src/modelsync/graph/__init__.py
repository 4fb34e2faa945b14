"""Relationship graph algorithms."""
