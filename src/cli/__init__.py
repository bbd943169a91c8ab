"""Command-line interface for the paper-trading execution core."""
