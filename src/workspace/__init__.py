"""Workspace provenance index."""
