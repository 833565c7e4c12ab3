"""SQLAlchemy models for the reference and invoice tables.

The engines never write to these tables; the models exist so a deployment
(or a test) can create the schema with ``init_db()``.  Views such as
``v_sales_invoices_enriched`` and ``v_export_pricing`` are deployment
specific and are not modelled.
"""

from __future__ import annotations

from sqlalchemy import Column, Date, Index, Integer, Numeric, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _amount() -> Column:
    return Column(Numeric(14, 2, asdecimal=False), nullable=True)


def _rate() -> Column:
    return Column(Numeric(8, 4, asdecimal=False), nullable=True)


class VatRateRow(Base):
    __tablename__ = "vat_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    territory_code = Column(String(32), nullable=False, index=True)
    rate_percent = _rate()
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)


class OmRateRow(Base):
    """Octroi de Mer, general (``om_rate``) and regional (``omr_rate``) parts."""

    __tablename__ = "om_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    territory_code = Column(String(32), nullable=False, index=True)
    hs_code = Column(String(16), nullable=True)
    om_rate = _rate()
    omr_rate = _rate()
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)


class OctroiRateRow(Base):
    __tablename__ = "octroi_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    territory_code = Column(String(32), nullable=False, index=True)
    rate_percent = _rate()
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)


class ExtraTaxRuleRow(Base):
    __tablename__ = "tax_rules_extra"

    id = Column(Integer, primary_key=True, autoincrement=True)
    territory_code = Column(String(32), nullable=False, index=True)
    label = Column(String(255), nullable=True)
    rate_percent = _rate()
    flat_eur = _amount()
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)


class SalesInvoiceRow(Base):
    __tablename__ = "sales_invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(64), nullable=False, unique=True)
    invoice_date = Column(Date, nullable=True)
    client_id = Column(String(64), nullable=True)
    client_name = Column(String(255), nullable=True)
    territory_code = Column(String(32), nullable=True)
    ile = Column(String(64), nullable=True)
    invoice_ht_eur = _amount()
    products_ht_eur = _amount()
    transit_fee_eur = _amount()
    transport_cost_eur = _amount()
    nb_colis = Column(Integer, nullable=True)
    currency = Column(String(8), nullable=True, default="EUR")
    status = Column(String(32), nullable=True)

    __table_args__ = (
        Index("idx_sales_invoices_date", "invoice_date"),
        Index("idx_sales_invoices_client", "client_id"),
    )


class SalesRow(Base):
    """One sales line; ``invoice_number`` ties it to its invoice."""

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(64), nullable=True, index=True)
    date = Column(Date, nullable=True)
    client_id = Column(String(64), nullable=True)
    product_id = Column(String(64), nullable=True)
    product_label = Column(String(255), nullable=True)
    quantity = _amount()
    unit_price_ht = _amount()
    net_sales_ht = _amount()
    amount_ht = _amount()
    weight_kg = _amount()
    currency = Column(String(8), nullable=True)
    market_zone = Column(String(32), nullable=True)
    territory_code = Column(String(32), nullable=True)
    incoterm = Column(String(8), nullable=True)
    destination = Column(String(64), nullable=True)
