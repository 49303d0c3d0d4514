"""minime: background insight extraction from captured project memories."""

__version__ = "0.1.0"
