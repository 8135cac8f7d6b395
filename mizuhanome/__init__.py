"""Mizuhanome - progressive staking ledger for automated race wagering."""

__version__ = "0.1.0"
