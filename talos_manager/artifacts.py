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

"""Kubeconfig and talosconfig assembly, including admin client certificate signing."""

from __future__ import annotations

import base64
import binascii
import datetime
import time
from urllib.parse import urlsplit, urlunsplit

import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed448, ed25519, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from talos_manager.constants import (
    ADMIN_CERT_VALIDITY_DAYS,
    ADMIN_COMMON_NAME,
    ADMIN_KEY_SIZE,
    ADMIN_ORGANIZATION,
    ADMIN_USER,
    KUBERNETES_API_PORT,
    LOOPBACK_HOSTS,
    PEM_SNIPPET_LENGTH,
)
from talos_manager.errors import ArtifactError
from talos_manager.talos import ClientConfiguration

PEM_MARKER = b"-----BEGIN"


# ============================================================================
# PEM helpers
# ============================================================================

def _snippet(text: str) -> str:
    if len(text) > PEM_SNIPPET_LENGTH:
        return text[:PEM_SNIPPET_LENGTH] + "..."
    return text


def decode_pem(raw: str | bytes, field: str) -> bytes:
    """Return PEM bytes from raw PEM text or base64-wrapped PEM.

    Talos stores certificates and keys base64-encoded, while users may
    paste plain PEM, so both forms are accepted.

    Args:
        raw: PEM text, or base64 encoding of PEM text.
        field: Name of the material, used in error messages (e.g. ``CA Cert``).

    Returns:
        The PEM-encoded bytes.

    Raises:
        ArtifactError: If *raw* is neither form. Only a short prefix of the
            input is included in the message.
    """
    data = raw.encode() if isinstance(raw, str) else bytes(raw)
    data = data.strip()
    if data.startswith(PEM_MARKER):
        return data
    try:
        decoded = base64.b64decode(b"".join(data.split()), validate=True).strip()
    except (binascii.Error, ValueError):
        decoded = b""
    if decoded.startswith(PEM_MARKER):
        return decoded
    preview = data.decode(errors="replace")
    raise ArtifactError(f"{field}: failed to parse PEM (starts with: {_snippet(preview)!r})")


def load_certificate(raw: str | bytes, field: str = "CA Cert") -> x509.Certificate:
    """Parse an X.509 certificate from raw or base64-wrapped PEM."""
    pem = decode_pem(raw, field)
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as err:
        raise ArtifactError(f"{field}: failed to parse certificate: {err}") from err


def load_private_key(raw: str | bytes, field: str = "CA Key"):
    """Parse a PKCS#1, PKCS#8 or EC private key from raw or base64-wrapped PEM."""
    pem = decode_pem(raw, field)
    try:
        return serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as err:
        raise ArtifactError(f"{field}: failed to parse private key: {err}") from err


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


# ============================================================================
# Admin certificate
# ============================================================================

def sign_admin_certificate(ca_cert: str | bytes, ca_key: str | bytes) -> tuple[bytes, bytes]:
    """Sign a cluster-admin client certificate with the Kubernetes CA.

    The certificate carries CN ``kubernetes-admin`` and O ``system:masters``,
    is valid for one year and only usable for client authentication.

    Args:
        ca_cert: Kubernetes CA certificate (raw or base64-wrapped PEM).
        ca_key: Kubernetes CA private key (raw or base64-wrapped PEM).

    Returns:
        Tuple of (certificate PEM, RSA private key PEM).

    Raises:
        ArtifactError: If the CA material cannot be parsed.
    """
    ca = load_certificate(ca_cert, "CA Cert")
    signing_key = load_private_key(ca_key, "CA Key")

    key = rsa.generate_private_key(public_exponent=65537, key_size=ADMIN_KEY_SIZE)
    now = datetime.datetime.now(datetime.timezone.utc)
    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, ADMIN_ORGANIZATION),
        x509.NameAttribute(NameOID.COMMON_NAME, ADMIN_COMMON_NAME),
    ])
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(ca.subject)
        .public_key(key.public_key())
        .serial_number(time.time_ns())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=ADMIN_CERT_VALIDITY_DAYS))
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
    )
    # Ed25519/Ed448 keys sign without a separate digest.
    algorithm = None if isinstance(signing_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)) \
        else hashes.SHA256()
    try:
        cert = builder.sign(signing_key, algorithm)
    except (ValueError, TypeError) as err:
        raise ArtifactError(f"Admin certificate: signing failed: {err}") from err

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


# ============================================================================
# Client configuration documents
# ============================================================================

def build_kubeconfig(cluster_name: str, server_host: str, ca_cert: str | bytes, ca_key: str | bytes) -> str:
    """Build an admin kubeconfig for the cluster.

    Args:
        cluster_name: Cluster name; also names the cluster entry.
        server_host: Host or address of the Kubernetes API server.
        ca_cert: Kubernetes CA certificate (raw or base64-wrapped PEM).
        ca_key: Kubernetes CA private key (raw or base64-wrapped PEM).

    Returns:
        The kubeconfig as a YAML document.
    """
    ca_pem = decode_pem(ca_cert, "CA Cert")
    cert_pem, key_pem = sign_admin_certificate(ca_pem, ca_key)
    context = f"{ADMIN_USER}@{cluster_name}"
    kubeconfig = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {
                "certificate-authority-data": _b64(ca_pem),
                "server": f"https://{server_host}:{KUBERNETES_API_PORT}",
            },
        }],
        "contexts": [{
            "name": context,
            "context": {"cluster": cluster_name, "user": ADMIN_USER},
        }],
        "current-context": context,
        "preferences": {},
        "users": [{
            "name": ADMIN_USER,
            "user": {
                "client-certificate-data": _b64(cert_pem),
                "client-key-data": _b64(key_pem),
            },
        }],
    }
    return yaml.safe_dump(kubeconfig, sort_keys=False)


def _replace_host(server: str, host: str) -> str:
    parts = urlsplit(server)
    netloc_host = f"[{host}]" if ":" in host else host
    netloc = f"{netloc_host}:{parts.port}" if parts.port else netloc_host
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def rewrite_loopback_server(kubeconfig: str, public_host: str) -> str:
    """Point loopback API servers in *kubeconfig* at *public_host*.

    Args:
        kubeconfig: Kubeconfig YAML document.
        public_host: Host that replaces ``127.0.0.1``, ``localhost`` and ``::1``.

    Returns:
        The rewritten kubeconfig document.
    """
    data = yaml.safe_load(kubeconfig) or {}
    for entry in data.get("clusters") or []:
        cluster = entry.get("cluster") or {}
        server = cluster.get("server")
        if server and urlsplit(server).hostname in LOOPBACK_HOSTS:
            cluster["server"] = _replace_host(server, public_host)
    return yaml.safe_dump(data, sort_keys=False)


def build_talosconfig(cluster_name: str, endpoint: str, client: ClientConfiguration) -> str:
    """Build a talosconfig with a single context targeting *endpoint*.

    Args:
        cluster_name: Cluster name; also names the context.
        endpoint: Address used as both Talos endpoint and default node.
        client: Client credentials generated with the machine secrets.

    Returns:
        The talosconfig as a YAML document.
    """
    talosconfig = {
        "context": cluster_name,
        "contexts": {
            cluster_name: {
                "endpoints": [endpoint],
                "nodes": [endpoint],
                "ca": client.ca,
                "crt": client.crt,
                "key": client.key,
            },
        },
    }
    return yaml.safe_dump(talosconfig, sort_keys=False)
