"""SQLAlchemy ORM models for effective-dated reference tables."""

from invoicing_kernel.models.time_dependent import TaxRate, TimeDependentRecord

__all__ = [
    "TaxRate",
    "TimeDependentRecord",
]
