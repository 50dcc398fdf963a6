"""goup — Go toolkit version manager."""

__version__ = "0.1.0"
