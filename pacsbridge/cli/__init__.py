"""Command-line interface for PACS Bridge."""
