"""Query and projection service over the Cirrus smart-contract ledger."""

__version__ = "0.1.0"
