"""stepstone — deployment self-test for database coordinator, storage and metadata nodes."""

__version__ = "0.3.0"
