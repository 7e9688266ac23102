"""Command-line interface for fan-auth (``fan``)."""
