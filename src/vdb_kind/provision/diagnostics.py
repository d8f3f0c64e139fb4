"""Diagnostic bundle collected when the database fails to initialize."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ..shared.logging import get_logger
from ..utils import CommandResult
from .k8s import Kubectl

logger = get_logger(__name__)

OPERATOR_DEPLOYMENT = "verticadb-operator-manager"
VERTICA_POD_SELECTOR = "app.kubernetes.io/name=vertica"
OPERATOR_LOG_TAIL = 1000
EVENTS_TAIL = 200


@dataclass
class DiagnosticSection:
    """One item of the bundle."""

    title: str
    output: str
    ok: bool = True


class DiagnosticCollector:
    """Collect describe/log/event output for a VerticaDB that did not start."""

    def __init__(self, kubectl: Kubectl, db_name: str):
        self.kubectl = kubectl
        self.db_name = db_name

    def collectors(self) -> list[tuple[str, Callable[[], CommandResult]]]:
        """Bundle items in the order they are collected."""
        k = self.kubectl
        return [
            ("VerticaDB describe", lambda: k.describe("vdb", self.db_name)),
            (
                f"Operator logs (last {OPERATOR_LOG_TAIL} lines)",
                lambda: k.logs(f"deploy/{OPERATOR_DEPLOYMENT}", tail=OPERATOR_LOG_TAIL),
            ),
            ("Vertica pods", lambda: k.run("get", "pods", "-l", VERTICA_POD_SELECTOR, "-o", "wide")),
            ("Describe Vertica pod(s)", lambda: k.describe("pod", selector=VERTICA_POD_SELECTOR)),
            ("PVC/PV", lambda: k.run("get", "pvc,pv")),
            ("Recent cluster events", lambda: k.events(tail=EVENTS_TAIL)),
        ]

    def collect(self) -> list[DiagnosticSection]:
        """Collect every item; a failing item never stops the rest."""
        sections = []
        for title, fetch in self.collectors():
            try:
                result = fetch()
            except Exception as e:
                logger.warning("diagnostic fetch raised", item=title, error=str(e))
                sections.append(DiagnosticSection(title, str(e), ok=False))
                continue
            sections.append(DiagnosticSection(title, result.output, ok=result.ok))
        return sections


def render_bundle(sections: list[DiagnosticSection]) -> str:
    """Render sections with ==== headers."""
    lines = []
    for section in sections:
        lines.append(f"==== {section.title} ====")
        lines.append(section.output if section.output else "(no output)")
    return "\n".join(lines)
