"""
Certificate store adapter — reads the validity window of an issued artifact.

Adapter layer — implements the CertificateStoreReader port using
cryptography (PyCA). Accepts the artifact formats a vault typically writes:

  PEM  (-----BEGIN CERTIFICATE-----, first certificate is the leaf)
  DER  (single X.509 certificate)
  PFX  (PKCS#12 bundle, optionally password protected)

Any read or parse problem surfaces as CertificateParseError, which the
request pipeline downgrades to a warning.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12

from cert_renewer.domain.errors import CertificateParseError
from cert_renewer.domain.models import CertificateDates

log = structlog.get_logger()

_PEM_MARKER = b"-----BEGIN CERTIFICATE-----"


class CryptographyCertificateStore:
    """
    Read certificate dates from PEM, DER or PKCS#12 files.

    Implements the CertificateStoreReader port.
    """

    def __init__(self, pfx_password: str | None = None) -> None:
        self._pfx_password = pfx_password.encode() if pfx_password else None

    def read_certificate_dates(self, artifact_path: str) -> CertificateDates:
        try:
            data = Path(artifact_path).read_bytes()
        except OSError as e:
            raise CertificateParseError(f"Cannot read certificate artifact {artifact_path}: {e}") from e

        if not data:
            raise CertificateParseError(f"Certificate artifact is empty: {artifact_path}")

        cert = self._load(data, artifact_path)
        dates = CertificateDates(
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
        )
        log.debug(
            "certificate_store.dates_read",
            certificate_path=artifact_path,
            not_before=dates.not_before.isoformat(),
            not_after=dates.not_after.isoformat(),
        )
        return dates

    def _load(self, data: bytes, artifact_path: str) -> x509.Certificate:
        if _PEM_MARKER in data:
            try:
                return x509.load_pem_x509_certificate(data)
            except ValueError as e:
                raise CertificateParseError(f"Invalid PEM certificate {artifact_path}: {e}") from e

        try:
            return x509.load_der_x509_certificate(data)
        except ValueError:
            return self._load_pkcs12(data, artifact_path)

    def _load_pkcs12(self, data: bytes, artifact_path: str) -> x509.Certificate:
        try:
            _key, cert, _chain = pkcs12.load_key_and_certificates(data, self._pfx_password)
        except ValueError as e:
            raise CertificateParseError(
                f"Unrecognised certificate artifact {artifact_path}: {e}"
            ) from e
        if cert is None:
            raise CertificateParseError(f"PKCS#12 bundle has no certificate: {artifact_path}")
        return cert
