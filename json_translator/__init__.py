"""Parallel JSON document translation service."""
