"""Command-line tools for the OpenStreetMap API and its replication feeds."""

__version__ = "0.1.0"
