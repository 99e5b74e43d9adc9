"""Bundled data files for kernctl."""
