"""Exceptions raised by the export service layer."""

from __future__ import annotations


class InvoiceNotFoundError(LookupError):
    """No candidate source holds the requested invoice number."""

    def __init__(self, invoice_number: str):
        super().__init__(f"Facture {invoice_number} introuvable")
        self.invoice_number = invoice_number
