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

"""Shared fixtures: environment isolation, key material, fake secrets."""

from __future__ import annotations

import base64
import os
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from talos_manager.talos import ClientConfiguration, MachineSecrets

from pki import cert_pem, key_pem, make_ca

_ENV_PREFIXES = ("DOCKER_", "SCW_", "OS_", "OVH_", "OSC_", "DENVR_")
_ENV_NAMES = (
    "CLUSTER_NAME",
    "KUBERNETES_VERSION",
    "TALOS_VERSION",
    "CLUSTER_ENDPOINT",
    "CLUSTER_PUBLIC_ENDPOINT",
    "CLUSTER_DOMAIN",
    "CONTROL_PLANE_NODES",
    "WORKER_NODES",
    "NODE_DISTRIBUTION",
    "CLOUD_PROVIDER",
    "ENABLE_WIREGUARD",
    "CILIUM_VERSION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate settings from the developer's environment and any .env file."""
    for key in list(os.environ):
        if key.upper() in _ENV_NAMES or key.upper().startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(scope="session")
def rsa_ca() -> tuple[x509.Certificate, object]:
    return make_ca()


@pytest.fixture
def machine_secrets(tmp_path: Path, rsa_ca) -> MachineSecrets:
    """Machine secrets as talosctl would produce them (base64-wrapped PEM)."""
    cert, key = rsa_ca
    return MachineSecrets(
        secrets_file=tmp_path / "secrets.yaml",
        talosconfig_file=tmp_path / "talosconfig.generated",
        kubernetes_ca_cert=base64.b64encode(cert_pem(cert)).decode(),
        kubernetes_ca_key=base64.b64encode(key_pem(key, serialization.PrivateFormat.TraditionalOpenSSL)).decode(),
        client=ClientConfiguration(ca="Y2E=", crt="Y3J0", key="a2V5"),
    )
