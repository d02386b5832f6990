"""
Unit tests for the certificate store adapter.

Certificates are generated on the fly with cryptography and written to
tmp_path as PEM, DER and PKCS#12 artifacts.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from cert_renewer.adapters.certificate_store import CryptographyCertificateStore
from cert_renewer.domain.errors import CertificateParseError

NOT_BEFORE = datetime(2024, 6, 1, 0, 0, tzinfo=UTC)
NOT_AFTER = datetime(2024, 8, 30, 0, 0, tzinfo=UTC)


@pytest.fixture(scope="module")
def key_and_cert() -> tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "example.com")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOT_BEFORE)
        .not_valid_after(NOT_AFTER)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def _write(tmp_path: Path, name: str, data: bytes) -> str:
    path = tmp_path / name
    path.write_bytes(data)
    return str(path)


class TestReadCertificateDates:
    def test_reads_pem(self, tmp_path: Path, key_and_cert) -> None:
        _, cert = key_and_cert
        path = _write(tmp_path, "cert.pem", cert.public_bytes(serialization.Encoding.PEM))

        dates = CryptographyCertificateStore().read_certificate_dates(path)

        assert dates.not_before == NOT_BEFORE
        assert dates.not_after == NOT_AFTER

    def test_reads_der(self, tmp_path: Path, key_and_cert) -> None:
        _, cert = key_and_cert
        path = _write(tmp_path, "cert.der", cert.public_bytes(serialization.Encoding.DER))

        dates = CryptographyCertificateStore().read_certificate_dates(path)

        assert dates.not_after == NOT_AFTER

    def test_reads_password_protected_pfx(self, tmp_path: Path, key_and_cert) -> None:
        """
        GIVEN a PKCS#12 bundle protected with a password
        WHEN the store is configured with that password
        THEN the leaf certificate's validity window is returned.
        """
        key, cert = key_and_cert
        pfx = pkcs12.serialize_key_and_certificates(
            b"example.com",
            key,
            cert,
            None,
            serialization.BestAvailableEncryption(b"s3cret"),
        )
        path = _write(tmp_path, "cert.pfx", pfx)

        dates = CryptographyCertificateStore(pfx_password="s3cret").read_certificate_dates(path)

        assert dates.not_before == NOT_BEFORE
        assert dates.not_after == NOT_AFTER

    def test_pfx_with_wrong_password_fails(self, tmp_path: Path, key_and_cert) -> None:
        key, cert = key_and_cert
        pfx = pkcs12.serialize_key_and_certificates(
            b"example.com", key, cert, None, serialization.BestAvailableEncryption(b"s3cret")
        )
        path = _write(tmp_path, "cert.pfx", pfx)

        with pytest.raises(CertificateParseError):
            CryptographyCertificateStore(pfx_password="wrong").read_certificate_dates(path)

    def test_missing_file_raises_parse_error(self, tmp_path: Path) -> None:
        with pytest.raises(CertificateParseError, match="Cannot read"):
            CryptographyCertificateStore().read_certificate_dates(str(tmp_path / "absent.pfx"))

    def test_empty_file_raises_parse_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "empty.pem", b"")

        with pytest.raises(CertificateParseError, match="empty"):
            CryptographyCertificateStore().read_certificate_dates(path)

    def test_garbage_raises_parse_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "junk.bin", b"\x00\x01not a certificate")

        with pytest.raises(CertificateParseError):
            CryptographyCertificateStore().read_certificate_dates(path)

    def test_broken_pem_raises_parse_error(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "broken.pem",
            b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n",
        )

        with pytest.raises(CertificateParseError, match="Invalid PEM"):
            CryptographyCertificateStore().read_certificate_dates(path)
