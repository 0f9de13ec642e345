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

"""Tests for Helm release arguments and Cilium values."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
import sh
import yaml

from talos_manager import helm
from talos_manager.components import CiliumConfig, cilium_release, cilium_values, install_cilium
from talos_manager.errors import ClusterError
from talos_manager.helm import HelmRelease, helm_upgrade_args


class TestCiliumValues:
    def test_defaults(self) -> None:
        values = cilium_values(CiliumConfig(k8s_service_host="openaether-local-lb"))
        assert values["kubeProxyReplacement"] is True
        assert values["k8sServiceHost"] == "openaether-local-lb"
        assert values["k8sServicePort"] == 6443
        assert values["ipam"] == {"mode": "kubernetes"}
        assert values["encryption"] == {"enabled": True, "type": "wireguard"}
        assert values["hubble"]["relay"] == {"enabled": True}

    def test_without_wireguard_and_hubble(self) -> None:
        values = cilium_values(CiliumConfig(k8s_service_host="h", enable_wireguard=False, enable_hubble=False))
        assert "encryption" not in values
        assert "hubble" not in values

    def test_release(self) -> None:
        release = cilium_release(CiliumConfig(k8s_service_host="h", version="1.15.0"))
        assert release.name == "cilium"
        assert release.namespace == "kube-system"
        assert release.repository == "https://helm.cilium.io/"
        assert release.timeout == 600
        assert not release.create_namespace
        assert not release.wait


class TestHelm:
    def test_upgrade_args(self) -> None:
        release = HelmRelease(
            name="r", chart="c", namespace="ns", version="1.0", repository="https://charts",
            create_namespace=True, wait=True,
        )
        args = helm_upgrade_args(release, "/k", "/v")
        assert args[:6] == ["upgrade", "--install", "r", "c", "--namespace", "ns"]
        assert args[args.index("--repo") + 1] == "https://charts"
        assert args[args.index("--timeout") + 1] == "300s"
        assert args[-2:] == ["--create-namespace", "--wait"]

    def test_optional_flags_omitted(self) -> None:
        args = helm_upgrade_args(HelmRelease(name="r", chart="c", namespace="ns"), "/k", "/v")
        assert "--repo" not in args
        assert "--version" not in args
        assert "--wait" not in args

    def test_install_cilium_passes_values_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: dict = {}

        def _helm(*args: str) -> str:
            seen["args"] = args
            seen["values"] = yaml.safe_load(Path(args[args.index("--values") + 1]).read_text())
            seen["kubeconfig"] = Path(args[args.index("--kubeconfig") + 1]).read_text()
            return ""

        monkeypatch.setattr(helm, "sh", SimpleNamespace(helm=_helm, ErrorReturnCode=sh.ErrorReturnCode))
        install_cilium(CiliumConfig(k8s_service_host="198.51.100.1"), "kind: Config\n")
        assert seen["values"]["k8sServiceHost"] == "198.51.100.1"
        assert seen["kubeconfig"] == "kind: Config\n"
        assert not Path(seen["args"][seen["args"].index("--values") + 1]).exists()

    def test_install_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _helm(*args: str) -> str:
            raise sh.ErrorReturnCode_1("helm upgrade", b"", b"chart not found")

        monkeypatch.setattr(helm, "sh", SimpleNamespace(helm=_helm, ErrorReturnCode=sh.ErrorReturnCode))
        with pytest.raises(ClusterError, match="Helm release cilium failed: chart not found"):
            install_cilium(CiliumConfig(k8s_service_host="h"), "k")
