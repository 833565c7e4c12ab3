"""Relational store access."""

from exportops.db.backend import SqlAlchemyBackend
from exportops.db.models import (
    Base,
    ExtraTaxRuleRow,
    OctroiRateRow,
    OmRateRow,
    SalesInvoiceRow,
    SalesRow,
    VatRateRow,
)
from exportops.db.session import drop_all, get_engine, get_standalone_session, init_db

__all__ = [
    "Base",
    "ExtraTaxRuleRow",
    "OctroiRateRow",
    "OmRateRow",
    "SalesInvoiceRow",
    "SalesRow",
    "SqlAlchemyBackend",
    "VatRateRow",
    "drop_all",
    "get_engine",
    "get_standalone_session",
    "init_db",
]
