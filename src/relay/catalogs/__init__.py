"""Bundled task catalogs."""
