"""Eddie trading-decision core."""

__version__ = "0.3.0"
