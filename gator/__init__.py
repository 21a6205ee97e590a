"""gator - a multi-user RSS aggregator."""

__version__ = "0.1.0"
