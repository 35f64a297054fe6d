"""
Module: invoicing_kernel.models.time_dependent
Responsibility: ORM persistence for effective-dated reference tables.  Each
    row holds one value over the half-open interval [valid_from, valid_until)
    and may point at the row that replaces it when it expires.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/ or domain/.

Invariants enforced:
    - valid_from is NOT NULL.
    - replaced_by_id is a self-referencing foreign key.
    Contiguity, acyclicity and valid_from < valid_until are checked when the
    identity cache loads the table (see domain/chain.py), not by the database.

Failure modes:
    - IntegrityError on a NULL valid_from or an unknown replaced_by_id (on
      backends that enforce foreign keys).

Audit relevance:
    Rows are append-only.  A rate change adds a new row and sets valid_until
    and replaced_by_id on the expiring one; the value of an old row is never
    edited, so every historical invoice keeps pointing at the rate it used.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoicing_kernel.db.base import Base


class TimeDependentRecord(Base):
    """
    Generic time-dependent row using the logical column names.

    Contract:
        Columns match ``FieldMap()`` defaults, so the table can be loaded
        without any field mapping.

    Non-goals:
        - Does NOT resolve chains itself; ``TemporalChainResolver`` does that
          over the cached snapshot.
    """

    __tablename__ = "time_dependent_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # NULL means "valid until further notice"
    valid_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    replaced_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("time_dependent_records.id"),
        nullable=True,
    )

    value: Mapped[str] = mapped_column(String(255), nullable=False)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    replaced_by: Mapped["TimeDependentRecord | None"] = relationship(
        remote_side="TimeDependentRecord.id",
        back_populates="replaces",
    )
    replaces: Mapped[list["TimeDependentRecord"]] = relationship(
        back_populates="replaced_by",
    )

    def __repr__(self) -> str:
        return f"<TimeDependentRecord {self.id} {self.value!r}>"


class TaxRate(Base):
    """
    Tax rate -- a time-dependent table whose value column is named ``rate``.

    Load it with ``FieldMap(value="rate")``; ``description`` travels through
    to ``TemporalRecord.attributes``.
    """

    __tablename__ = "tax_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Rate as a fraction (0.175 == 17.5%)
    rate: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)

    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    valid_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    replaced_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("tax_rates.id"),
        nullable=True,
    )

    replaced_by: Mapped["TaxRate | None"] = relationship(
        remote_side="TaxRate.id",
        back_populates="replaces",
    )
    replaces: Mapped[list["TaxRate"]] = relationship(
        back_populates="replaced_by",
    )

    def __repr__(self) -> str:
        return f"<TaxRate {self.id} {self.description or ''} = {self.rate}>"
