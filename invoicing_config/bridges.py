"""
Config -> Kernel Bridges.

Functions that turn ``KernelSettings`` into configured kernel objects.
These live in invoicing_config because the kernel must NEVER import
invoicing_config.

Usage:
    from invoicing_config import get_active_settings
    from invoicing_config.bridges import apply_settings, build_resolver
    from invoicing_kernel.models import TaxRate

    settings = get_active_settings()
    session_factory = apply_settings(settings)
    tax_rates = build_resolver(settings, TaxRate, session_factory)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from invoicing_config.schema import KernelSettings
from invoicing_kernel.db.engine import get_session_factory, init_engine_from_url
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.logging_config import configure_logging
from invoicing_kernel.services.temporal_chain import TemporalChainResolver


def apply_settings(settings: KernelSettings) -> sessionmaker[Session]:
    """Configure logging and the engine; return the session factory."""
    configure_logging(level=settings.logging.level)
    init_engine_from_url(settings.database.url, echo=settings.database.echo)
    return get_session_factory()


def build_resolver(
    settings: KernelSettings,
    model: Any,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
) -> TemporalChainResolver:
    """Resolver over ``model``'s table using the configured field map."""
    table = settings.table(model.__table__.name)
    return TemporalChainResolver.for_model(
        model,
        session_factory,
        field_map=table.field_map(),
        clock=clock,
    )
