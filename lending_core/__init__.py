"""Collateralized lending core: position ledger, risk math and liquidation sweep."""

__version__ = "0.1.0"
