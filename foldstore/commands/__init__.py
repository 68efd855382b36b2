"""Command implementations for the foldstore CLI."""
