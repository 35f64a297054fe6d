"""
Module: invoicing_kernel.db.base
Responsibility: Declarative base class for the kernel's SQLAlchemy ORM models
    and the type annotation map that keeps column types consistent.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - Decimal precision: Decimal maps to Numeric(38, 9).  NEVER use float
      for rates or prices.
    - Timestamps: datetime maps to DateTime(timezone=True).

Failure modes:
    - None at import time; column-level failures surface as IntegrityError
      from the driver on INSERT.

Audit relevance:
    Time-dependent tables are append-only reference data.  Their column types
    are fixed here so a rate reads back exactly as it was written.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models in the kernel.

    Effective-dated reference tables use small integer primary keys that
    are written by migrations, so each model declares its own ``id`` column.
    """

    type_annotation_map: ClassVar[dict] = {
        # Financial precision: 38 digits total, 9 decimal places
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
    }
