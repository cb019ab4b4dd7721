"""Command-line interface for Buildplan."""
