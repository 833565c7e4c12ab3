"""Keyword and accounting-account rules that type untyped cost and invoice lines.

Only lines without a usable type are touched: cost lines typed ``autre`` (or
empty) and invoice lines without ``cost_type``.  The first matching rule wins.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, replace
from typing import Iterable, List, Literal, Optional, Sequence, Tuple

from exportops.reco.models import OTHER, CostDoc, CostDocLine, ImportedInvoice, ImportedInvoiceLine

RuleTarget = Literal["invoice", "cost", "any"]


def fold_text(value: Optional[str]) -> str:
    """Lowercase and strip diacritics, so ``Dédouanement`` matches ``dedouan``."""

    decomposed = unicodedata.normalize("NFD", (value or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


@dataclass(frozen=True)
class KeywordRule:
    id: str
    cost_type: str
    keywords: Tuple[str, ...] = ()
    account_prefixes: Tuple[str, ...] = ()
    applies_to: RuleTarget = "any"
    description: str = ""

    def applies(self, target: RuleTarget) -> bool:
        return self.applies_to == "any" or self.applies_to == target

    def matches(self, folded_text: str, account: Optional[str]) -> bool:
        if account and any(account.startswith(prefix) for prefix in self.account_prefixes):
            return True
        return any(fold_text(keyword) in folded_text for keyword in self.keywords)


DEFAULT_KEYWORD_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule(
        id="transport_base",
        cost_type="transport",
        keywords=("fret", "transport", "shipping", "colis", "livraison"),
        account_prefixes=("6061", "6241"),
        description="Frais de transport / fret",
    ),
    KeywordRule(
        id="douane",
        cost_type="douane",
        keywords=("dédouan", "droits", "omr", "octroi", "customs", "douane"),
        account_prefixes=("608", "607"),
        description="Droits de douane, OM/OMR",
    ),
    KeywordRule(
        id="transit",
        cost_type="transit",
        keywords=("transit", "clearance", "declaration", "broker"),
        description="Prestations transit / dédouanement",
    ),
    KeywordRule(
        id="frais_dossier",
        cost_type="frais_dossier",
        keywords=("dossier", "handling", "manutention", "frais admin", "frais dossier"),
        description="Frais de dossier / handling",
    ),
    KeywordRule(
        id="assurance",
        cost_type="assurance",
        keywords=("assur", "insurance"),
        account_prefixes=("616",),
        description="Assurance transport",
    ),
)


@dataclass(frozen=True)
class PilotageRules:
    keyword_rules: Tuple[KeywordRule, ...] = DEFAULT_KEYWORD_RULES

    @classmethod
    def build(cls, keyword_rules: Optional[Iterable[KeywordRule]] = None) -> "PilotageRules":
        """An empty or missing rule list means the default rules."""
        rules = tuple(keyword_rules or ())
        return cls(keyword_rules=rules or DEFAULT_KEYWORD_RULES)


DEFAULT_RULES = PilotageRules()


def classify_text(
    text: Optional[str],
    account: Optional[str] = None,
    rules: PilotageRules = DEFAULT_RULES,
    target: RuleTarget = "any",
) -> Optional[str]:
    folded = fold_text(text)
    for rule in rules.keyword_rules:
        if rule.applies(target) and rule.matches(folded, account):
            return rule.cost_type
    return None


def _classify_invoice_line(line: ImportedInvoiceLine, rules: PilotageRules) -> ImportedInvoiceLine:
    if line.cost_type:
        return line
    guess = classify_text(line.description, line.account, rules, "invoice")
    return replace(line, cost_type=guess) if guess else line


def _classify_cost_line(line: CostDocLine, rules: PilotageRules) -> CostDocLine:
    if line.type and line.type != OTHER:
        return line
    guess = classify_text(line.label, line.reference, rules, "cost")
    return replace(line, type=guess) if guess else line


def apply_rules_to_invoice(invoice: ImportedInvoice, rules: PilotageRules = DEFAULT_RULES) -> ImportedInvoice:
    if not invoice.lines:
        return invoice
    return replace(invoice, lines=tuple(_classify_invoice_line(line, rules) for line in invoice.lines))


def apply_rules_to_cost_doc(doc: CostDoc, rules: PilotageRules = DEFAULT_RULES) -> CostDoc:
    return replace(doc, lines=tuple(_classify_cost_line(line, rules) for line in doc.lines))


def apply_rules_to_cost_docs(docs: Sequence[CostDoc], rules: PilotageRules = DEFAULT_RULES) -> List[CostDoc]:
    return [apply_rules_to_cost_doc(doc, rules) for doc in docs]
