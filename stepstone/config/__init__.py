"""Configuration contracts: runtime settings and role config snapshots."""
