"""Canvas command line client: remote addressing, local index and sync."""

__version__ = "0.4.0"
