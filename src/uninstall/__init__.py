"""Provenance-driven uninstall."""
