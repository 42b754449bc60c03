"""castio — host process for broadcast-graphics service bundles."""

__version__ = "0.1.0"
