"""Attester Operator: reconciles Attester resources into ready-to-use attesters."""

__version__ = "0.1.0"
