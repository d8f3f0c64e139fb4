"""Unit tests for the diagnostic bundle."""

from __future__ import annotations

from unittest.mock import MagicMock

from vdb_kind.provision import DiagnosticCollector, DiagnosticSection, render_bundle
from vdb_kind.utils import CommandResult


def make_kubectl():
    kubectl = MagicMock()
    kubectl.describe.return_value = CommandResult(["kubectl"], 0, "Name: vdb\n")
    kubectl.logs.return_value = CommandResult(["kubectl"], 0, "reconcile error\n")
    kubectl.run.return_value = CommandResult(["kubectl"], 0, "NAME READY\n")
    kubectl.events.return_value = CommandResult(["kubectl"], 0, "Warning FailedScheduling\n")
    return kubectl


class TestDiagnosticCollector:
    """Tests for DiagnosticCollector."""

    def test_order(self):
        """Test items are collected describe first and events last."""
        sections = DiagnosticCollector(make_kubectl(), "vdb").collect()

        assert [s.title for s in sections] == [
            "VerticaDB describe",
            "Operator logs (last 1000 lines)",
            "Vertica pods",
            "Describe Vertica pod(s)",
            "PVC/PV",
            "Recent cluster events",
        ]

    def test_fetch_arguments(self):
        kubectl = make_kubectl()
        DiagnosticCollector(kubectl, "analytics").collect()

        kubectl.describe.assert_any_call("vdb", "analytics")
        kubectl.logs.assert_called_once_with("deploy/verticadb-operator-manager", tail=1000)
        kubectl.events.assert_called_once_with(tail=200)

    def test_failures_do_not_stop_collection(self):
        """Test a failing or raising item is recorded and the rest still run."""
        kubectl = make_kubectl()
        kubectl.logs.side_effect = RuntimeError("no operator")
        kubectl.events.return_value = CommandResult(["kubectl"], 1, "", "connection refused")

        sections = DiagnosticCollector(kubectl, "vdb").collect()

        assert len(sections) == 6
        assert not sections[1].ok
        assert "no operator" in sections[1].output
        assert not sections[-1].ok
        assert sections[-1].output == "connection refused"


class TestRenderBundle:
    def test_headers(self):
        text = render_bundle([DiagnosticSection("A", "one"), DiagnosticSection("B", "")])
        assert text == "==== A ====\none\n==== B ====\n(no output)"
