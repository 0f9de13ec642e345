# /*
# Copyright 2026 The OpenAether Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Tests for the talosctl wrapper layer."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import sh
import yaml
from tenacity import wait_none

from talos_manager import talos
from talos_manager.config import ClusterConfig
from talos_manager.errors import TalosError


def _flag(args: tuple[str, ...], name: str) -> str:
    return args[args.index(name) + 1]


class FakeTalosctl:
    """Records talosctl invocations and writes the files they would produce."""

    def __init__(self, failures: int = 0) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.failures = failures

    def __call__(self, *args: str) -> str:
        self.calls.append(args)
        if self.failures:
            self.failures -= 1
            raise TalosError("talosctl apply-config failed: connection refused")
        if args[:2] == ("gen", "secrets"):
            Path(_flag(args, "--output-file")).write_text(yaml.safe_dump(
                {"certs": {"k8s": {"crt": "Y3J0", "key": "a2V5"}}},
            ))
        elif args[:2] == ("gen", "config") and "talosconfig" in args:
            Path(_flag(args, "--output")).write_text(yaml.safe_dump({
                "context": args[2],
                "contexts": {args[2]: {"ca": "Y2E=", "crt": "Y2xp", "key": "a2V5"}},
            }))
        elif args[:2] == ("gen", "config"):
            out = Path(_flag(args, "--output"))
            (out / "controlplane.yaml").write_text("machine:\n  type: controlplane\n")
            (out / "worker.yaml").write_text("machine:\n  type: worker\n")
        elif "kubeconfig" in args:
            return "apiVersion: v1\nkind: Config\n"
        return ""


@pytest.fixture
def talosctl(monkeypatch: pytest.MonkeyPatch) -> FakeTalosctl:
    fake = FakeTalosctl()
    monkeypatch.setattr(talos, "_talosctl", fake)
    return fake


class TestTalosctlWrapper:
    def test_error_names_subcommand(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _fail(*args):
            raise sh.ErrorReturnCode_1("talosctl gen secrets", b"", b"permission denied")

        monkeypatch.setattr(talos, "sh", SimpleNamespace(talosctl=_fail, ErrorReturnCode=sh.ErrorReturnCode))
        with pytest.raises(TalosError, match="talosctl gen failed: permission denied"):
            talos._talosctl("gen", "secrets", "--output-file", "/tmp/x/secrets.yaml")


class TestSecretsAndConfigs:
    def test_generate_secrets(self, talosctl: FakeTalosctl, tmp_path: Path) -> None:
        cfg = ClusterConfig(cluster_name="edge")
        secrets = talos.generate_secrets(cfg, tmp_path / "secrets")
        assert secrets.kubernetes_ca_cert == "Y3J0"
        assert secrets.kubernetes_ca_key == "a2V5"
        assert secrets.client.crt == "Y2xp"
        gen_config = talosctl.calls[1]
        assert gen_config[2:4] == ("edge", "https://openaether-local-lb:6443")
        assert _flag(gen_config, "--with-secrets") == str(secrets.secrets_file)

    def test_generate_secrets_without_k8s_ca(
        self, monkeypatch: pytest.MonkeyPatch, talosctl: FakeTalosctl, tmp_path: Path,
    ) -> None:
        def _empty_bundle(*args: str) -> str:
            talosctl(*args)
            if args[:2] == ("gen", "secrets"):
                Path(_flag(args, "--output-file")).write_text("certs: {}\n")
            return ""

        monkeypatch.setattr(talos, "_talosctl", _empty_bundle)
        with pytest.raises(TalosError, match="no Kubernetes CA"):
            talos.generate_secrets(ClusterConfig(), tmp_path)

    def test_render_machine_configs(self, talosctl: FakeTalosctl, machine_secrets, tmp_path: Path) -> None:
        cfg = ClusterConfig(cluster_name="edge", kubernetes_version="v1.32.0", cluster_domain="edge.local")
        configs = talos.render_machine_configs(cfg, "203.0.113.10", machine_secrets, tmp_path / "configs")
        assert configs.for_role("controlplane") == "machine:\n  type: controlplane\n"
        assert configs.for_role("worker") == "machine:\n  type: worker\n"

        args = talosctl.calls[0]
        assert args[3] == "https://203.0.113.10:6443"
        assert _flag(args, "--kubernetes-version") == "1.32.0"
        assert _flag(args, "--dns-domain") == "edge.local"
        patch = yaml.safe_load((tmp_path / "configs" / talos.CONFIG_PATCH_FILENAME).read_text())
        assert patch["cluster"]["proxy"] == {"disabled": True}
        assert patch["cluster"]["network"]["cni"] == {"name": "none"}


class TestNodeOperations:
    def test_apply_retries_until_success(
        self, monkeypatch: pytest.MonkeyPatch, talosctl: FakeTalosctl,
    ) -> None:
        monkeypatch.setattr(talos.apply_machine_config.retry, "wait", wait_none())
        talosctl.failures = 2
        talos.apply_machine_config("machine: {}\n", "10.5.0.2")
        assert len(talosctl.calls) == 3
        args = talosctl.calls[-1]
        assert args[:4] == ("apply-config", "--insecure", "--nodes", "10.5.0.2")
        assert not Path(_flag(args, "--file")).exists()

    def test_bootstrap(self, talosctl: FakeTalosctl, machine_secrets) -> None:
        talos.bootstrap_cluster(machine_secrets, "10.5.0.2")
        args = talosctl.calls[0]
        assert _flag(args, "--talosconfig") == str(machine_secrets.talosconfig_file)
        assert "bootstrap" in args
        assert _flag(args, "--nodes") == "10.5.0.2"
        assert _flag(args, "--endpoints") == "10.5.0.2"

    def test_fetch_kubeconfig(self, talosctl: FakeTalosctl, tmp_path: Path) -> None:
        doc = talos.fetch_kubeconfig(tmp_path / "talosconfig", "10.5.0.2", "198.51.100.1")
        assert doc.startswith("apiVersion: v1")
        assert _flag(talosctl.calls[0], "--endpoints") == "198.51.100.1"

    def test_wait_for_talos_api_times_out(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(talos.socket, "create_connection", MagicMock(side_effect=OSError("refused")))
        assert talos.wait_for_talos_api("10.5.0.2", attempts=3, interval=0, settle=0) is False
        assert talos.socket.create_connection.call_count == 3

    def test_wait_for_talos_api_opens(self, monkeypatch: pytest.MonkeyPatch) -> None:
        connect = MagicMock(side_effect=[OSError("refused"), MagicMock()])
        monkeypatch.setattr(talos.socket, "create_connection", connect)
        assert talos.wait_for_talos_api("10.5.0.2", attempts=5, interval=0, settle=0) is True
        assert connect.call_args.args[0] == ("10.5.0.2", 50000)
        assert connect.call_count == 2

    def test_wait_for_talos_api_settles_once(self, monkeypatch: pytest.MonkeyPatch) -> None:
        sleeps: list[float] = []
        monkeypatch.setattr(talos.socket, "create_connection", MagicMock())
        monkeypatch.setattr(talos.time, "sleep", sleeps.append)
        assert talos.wait_for_talos_api("10.5.0.2", attempts=5, interval=0, settle=7) is True
        assert sleeps == [7]

    def test_wait_for_talos_api_unexpected_error_propagates(self, monkeypatch: pytest.MonkeyPatch) -> None:
        connect = MagicMock(side_effect=ValueError("bad host"))
        monkeypatch.setattr(talos.socket, "create_connection", connect)
        with pytest.raises(ValueError, match="bad host"):
            talos.wait_for_talos_api("not a host", attempts=5, interval=0, settle=0)
        assert connect.call_count == 1
