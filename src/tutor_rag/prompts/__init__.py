"""Packaged prompt templates."""
