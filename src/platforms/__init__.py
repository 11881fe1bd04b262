"""Platform definition table: defaults, user overrides and validation."""
