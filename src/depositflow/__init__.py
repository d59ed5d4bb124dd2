"""depositflow - crypto deposit intake and confirmation reconciliation."""

__version__ = "0.1.0"
