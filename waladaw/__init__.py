"""WalaDaw second-hand marketplace service."""

__version__ = "1.0.0"
