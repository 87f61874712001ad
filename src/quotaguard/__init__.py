"""quotaguard: in-process fixed-window rate limiting."""

__version__ = "0.1.0"
