"""Replicated, proof-of-work hash-chain ledger for patient record events."""

__version__ = "0.1.0"
