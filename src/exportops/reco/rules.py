"""Advisory checks on a single reconciliation case."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Collection, Dict, List, Literal, Optional

from exportops.reco.models import ReconciliationCase
from exportops.reco.reconcile import costs_by_type, transit_coverage

CaseSeverity = Literal["info", "warning", "blocker"]

DEFAULT_COVERAGE_THRESHOLD = 0.6
BLOCKER_COVERAGE = 0.3
DEFAULT_AMOUNT_TOLERANCE = 1.0


@dataclass(frozen=True)
class CaseAlert:
    id: str
    code: str
    severity: CaseSeverity
    message: str
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class CaseEvaluation:
    alerts: List[CaseAlert] = field(default_factory=list)
    risk_score: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return {"alerts": [asdict(alert) for alert in self.alerts], "risk_score": self.risk_score}


def score_alerts(alerts: List[CaseAlert]) -> int:
    blockers = sum(1 for alert in alerts if alert.severity == "blocker")
    warnings = sum(1 for alert in alerts if alert.severity == "warning")
    return max(0, 100 - 40 * blockers - 15 * warnings)


def evaluate_case(
    case: ReconciliationCase,
    *,
    coverage_threshold: float = DEFAULT_COVERAGE_THRESHOLD,
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
    known_destinations: Optional[Collection[str]] = None,
) -> CaseEvaluation:
    """Run the case checks; ``known_destinations`` enables the referential check."""

    alerts: List[CaseAlert] = []

    def add(code: str, severity: CaseSeverity, message: str, suggestion: str) -> None:
        alerts.append(CaseAlert(f"{code}-{len(alerts)}", code, severity, message, suggestion))

    coverage = transit_coverage(case)
    if coverage.coverage is not None and coverage.coverage < coverage_threshold:
        add(
            "TRANSIT_COVERAGE",
            "blocker" if coverage.coverage < BLOCKER_COVERAGE else "warning",
            f"Couverture transit {round(coverage.coverage * 100)}% "
            f"(< {round(coverage_threshold * 100)}% demandé)",
            "Refacturer le transit / frais dossier au client ou ajuster le pricing.",
        )

    if coverage.transit_costs > 0 and coverage.transit_billed == 0:
        add(
            "TRANSIT_NOT_BILLED",
            "blocker",
            "Coûts transit présents mais aucun transit facturé",
            "Ajouter une ligne transit/frais dossier sur la facture.",
        )

    invoice = case.invoice
    if (invoice.incoterm or "").upper() == "DDP" and costs_by_type(case)["douane"] == 0:
        add(
            "DDP_NO_CUSTOMS",
            "warning",
            "Incoterm DDP mais aucun coût douanier identifié",
            "Vérifier droits/TVA import ou OM/OMR selon destination.",
        )

    if invoice.total_ht is not None and invoice.total_tva is not None and invoice.total_ttc is not None:
        gap = abs(invoice.total_ht + invoice.total_tva - invoice.total_ttc)
        if gap > amount_tolerance:
            add(
                "AMOUNT_MISMATCH",
                "warning",
                f"Écart HT+TVA vs TTC : {gap:.2f} (devrait être 0)",
                "Vérifier taux TVA et montants HT/TVA saisis.",
            )

    if known_destinations is not None and invoice.destination and invoice.destination not in known_destinations:
        add(
            "DEST_NOT_IN_REF",
            "info",
            f"Destination {invoice.destination} absente du référentiel",
            "Ajouter/valider la destination dans le référentiel.",
        )

    return CaseEvaluation(alerts=alerts, risk_score=score_alerts(alerts))
