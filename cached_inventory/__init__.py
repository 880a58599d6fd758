"""In-memory, file-backed stock cache in front of a warehouse system."""

__version__ = "1.0.0"
