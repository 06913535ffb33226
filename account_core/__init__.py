"""
Account Core

Account domain model for a small retail bank: four account variants with
their business rules, an append-only transaction ledger per account, an
in-memory account registry backed by CSV persistence, and a scheduled
interest/fee engine. All money is Decimal with two-place precision.
"""

__version__ = "1.0.0"
