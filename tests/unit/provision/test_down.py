"""Unit tests for the down workflow."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from vdb_kind.provision import (
    Kubectl,
    TeardownCoordinator,
    TunnelRecord,
    TunnelStore,
    TunnelTracker,
)


@pytest.fixture
def provisioned(fake_cluster):
    """A fake cluster in the state a successful up leaves behind."""
    fake_cluster.clusters.add("vertica-local")
    fake_cluster.contexts.update({"kind-vertica-local", "kind-other"})
    fake_cluster.releases.update({"minio", "vertica-operator"})
    fake_cluster.secrets.add("s3-creds")
    fake_cluster.verticadb = True
    fake_cluster.crd_installed = True
    return fake_cluster


def make_coordinator(config, fake_cluster, lines=None, tracker=None):
    kubectl = Kubectl(config.namespace, config.kube_context)
    tracker = tracker or TunnelTracker(kubectl, TunnelStore(config.tunnel_dir), is_alive=fake_cluster.is_alive)
    echo = lines.append if lines is not None else (lambda message: None)
    return TeardownCoordinator(config, kubectl=kubectl, tunnels=tracker, echo=echo)


class TestTeardownCoordinator:
    """Tests for TeardownCoordinator."""

    def test_removes_everything(self, provisioned, config):
        """Test a full teardown of a provisioned cluster."""
        lines: list[str] = []
        report = make_coordinator(config, provisioned, lines).run()

        assert report.success
        assert report.failures == []
        assert provisioned.clusters == set()
        assert provisioned.releases == set()
        assert "kind-vertica-local" not in provisioned.contexts
        assert "kind-other" in provisioned.contexts
        assert lines[-1] == "Cleaned up: cluster vertica-local removed."

    def test_step_order(self, provisioned, config):
        """Test workloads go before releases, and releases before the cluster."""
        make_coordinator(config, provisioned).run()

        def first(*prefix):
            for i, call in enumerate(provisioned.calls):
                stripped = [a for a in call if a not in ("--context", "-n", "--kube-context", "--namespace")]
                if all(p in stripped for p in prefix):
                    return i
            raise AssertionError(f"no call with {prefix}")

        assert first("delete", "verticadb") < first("uninstall", "vertica-operator")
        assert first("uninstall", "vertica-operator") < first("uninstall", "minio")
        assert first("uninstall", "minio") < first("kind", "delete", "cluster")
        assert first("kind", "delete", "cluster") < first("config", "delete-context")

    def test_deletes_leftover_pvcs(self, provisioned, config):
        make_coordinator(config, provisioned).run()

        assert provisioned.count_calls("kubectl", "delete", "pvc") == 2
        assert provisioned.count_calls("kubectl", "delete", "statefulset", "vdb-sc") == 1

    def test_deletes_applied_manifest(self, provisioned, config):
        """Test the manifest file is deleted through kubectl when present."""
        config.manifest_path.parent.mkdir(parents=True)
        config.manifest_path.write_text("kind: VerticaDB\n")

        make_coordinator(config, provisioned).run()

        assert provisioned.count_calls("kubectl", "delete", "-f", str(config.manifest_path)) == 1

    def test_skips_verticadb_without_crd(self, provisioned, config):
        provisioned.crd_installed = False
        make_coordinator(config, provisioned).run()

        assert provisioned.count_calls("kubectl", "delete", "verticadb") == 0

    def test_no_prior_cluster(self, fake_cluster, config):
        """Test down against nothing still succeeds and skips workload steps."""
        lines: list[str] = []
        report = make_coordinator(config, fake_cluster, lines).run()

        assert report.success
        assert fake_cluster.count_calls("helm", "uninstall") == 0
        assert fake_cluster.count_calls("kubectl", "delete") == 0
        assert fake_cluster.count_calls("kind", "delete", "cluster") == 1
        assert lines[-1] == "Cleaned up: cluster vertica-local removed."

    def test_all_tools_missing(self, config):
        """Test down succeeds even when no tool can be run."""
        lines: list[str] = []
        with patch("subprocess.run", side_effect=FileNotFoundError):
            kubectl = Kubectl(config.namespace, config.kube_context)
            tracker = TunnelTracker(kubectl, TunnelStore(config.tunnel_dir))
            coordinator = TeardownCoordinator(config, kubectl=kubectl, tunnels=tracker, echo=lines.append)
            report = coordinator.run()

        assert report.success
        assert {f.step for f in report.failures} >= {"delete kind cluster", "clean kubeconfig"}
        assert lines[-1] == "Cleaned up: cluster vertica-local removed."

    def test_raising_step_does_not_stop_later_steps(self, provisioned, config):
        """Test an exception in one step is recorded and teardown continues."""
        tracker = MagicMock()
        tracker.stop.side_effect = RuntimeError("boom")
        tracker.stop_all.return_value = []

        report = make_coordinator(config, provisioned, tracker=tracker).run()

        assert report.success
        assert [f.step for f in report.failures][:2] == ["stop vertica tunnel", "stop console tunnel"]
        assert provisioned.clusters == set()

    def test_failed_uninstall_recorded(self, provisioned, config):
        provisioned.releases.discard("vertica-operator")
        report = make_coordinator(config, provisioned).run()

        assert report.success
        assert [f.step for f in report.failures] == ["uninstall operator"]
        assert "minio" not in provisioned.releases

    def test_stops_recorded_tunnels(self, provisioned, config):
        """Test every recorded tunnel for the cluster is stopped."""
        store = TunnelStore(config.tunnel_dir)
        for port in (5433, 9001, 15433):
            store.write(TunnelRecord("vertica-local", port, f"default/svc/x:{port}", 40000 + port))
        store.write(TunnelRecord("other", 5433, "default/svc/x:5433", 1234))

        with patch("os.kill") as mock_kill:
            make_coordinator(config, provisioned).run()

        assert store.ports("vertica-local") == []
        assert store.ports("other") == [5433]
        assert mock_kill.call_count == 3


class TestDataWipe:
    """Tests for the --clean-data flag."""

    @pytest.fixture
    def host_data(self, config):
        (config.pv_dir / "pvc-123").mkdir(parents=True)
        (config.pv_dir / "pvc-123" / "catalog").write_text("data")
        config.links_dir.mkdir(parents=True)
        (config.links_dir / "default_data").symlink_to(config.pv_dir / "pvc-123")
        return config

    def test_data_kept_without_flag(self, provisioned, host_data):
        report = make_coordinator(host_data, provisioned).run()

        assert not report.data_wiped
        assert (host_data.pv_dir / "pvc-123" / "catalog").exists()
        assert host_data.links_dir.exists()

    def test_data_removed_with_flag(self, provisioned, host_data):
        """Test the PV data and links are removed only with clean_data."""
        lines: list[str] = []
        report = make_coordinator(host_data, provisioned, lines).run(clean_data=True)

        assert report.data_wiped
        assert not host_data.pv_dir.exists()
        assert not host_data.links_dir.exists()
        assert host_data.host_root.exists()
        assert any("Removing PV data" in line for line in lines)
        assert lines[-1] == "Cleaned up: cluster vertica-local removed."
