"""Command line interface for stepflow."""
