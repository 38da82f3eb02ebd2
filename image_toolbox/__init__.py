"""Local image compression and resizing toolbox."""

__version__ = "0.1.0"
