"""Text sticker renderer: animated 128x128 emoji from styled text."""

__version__ = "0.1.0"
