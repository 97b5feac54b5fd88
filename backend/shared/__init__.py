"""Shared layer: database, cache, models, repositories and migrations."""
