"""Dependency resolution: graph building, dangling-dependency queries and installation planning."""
