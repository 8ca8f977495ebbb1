"""Command-line interface for canvas-cli."""
