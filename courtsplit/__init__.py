"""Cost-splitting ledger for recurring group events."""

__version__ = "0.1.0"
