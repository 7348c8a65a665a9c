"""Live camera broadcast sessions."""

__version__ = "1.0.0"
