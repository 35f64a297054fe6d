"""
Invoicing Kernel

Effective-dated reference data for invoice and ledger bookkeeping:
- Identity cache over small, slowly-changing tables
- Replacement chains of time-dependent records (tax rates, prices)
- Point-in-time and range queries that never mutate history
"""

__version__ = "0.1.0"
