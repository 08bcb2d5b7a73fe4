"""uimigrate: discover, score, and migrate React components."""

__version__ = "0.3.0"
