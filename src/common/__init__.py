"""Shared helpers: logging, errors, events, caching, HTTP and path matching."""
