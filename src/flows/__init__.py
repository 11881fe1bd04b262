"""Flow matching, format-aware merging, composite sections and write-conflict resolution."""
