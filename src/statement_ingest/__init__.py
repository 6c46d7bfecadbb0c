"""Import bank and credit card PDF statements into a budget ledger."""

__version__ = "0.1.0"
