"""State-reconciliation core for the forum and direct-messaging client."""

__version__ = "0.1.0"
