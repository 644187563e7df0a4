"""
Session-scoped self-signed TLS certificate for the local OAuth callback.

Slack only accepts https:// redirect URIs, and a terminal client has no
public hostname to get a real certificate for. Each login therefore mints a
fresh certificate for 127.0.0.1 that lives only as long as the login attempt.
Browsers will flag it as untrusted: the user has to accept it explicitly,
and the fingerprint is printed so it can be checked against what the browser
shows.
"""

import ipaddress
import os
import secrets
import shutil
import ssl
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from .constants import OAUTH_CALLBACK_HOST, OAUTH_CERT_VALIDITY
from .utils import CertificateGenerationFailure


class EphemeralCertificate:
    """In-memory self-signed certificate and key for one login attempt."""

    def __init__(self, host: str = OAUTH_CALLBACK_HOST, validity: Optional[timedelta] = None):
        """
        Generate the key pair and certificate.

        Args:
            host: Loopback address the certificate is issued for
            validity: How long the certificate stays valid

        Raises:
            CertificateGenerationFailure: If the key or certificate cannot be generated
        """
        self.host = host
        self.validity = validity if validity is not None else timedelta(seconds=OAUTH_CERT_VALIDITY)
        try:
            self._key = ec.generate_private_key(ec.SECP256R1())
            self.certificate = self._build_certificate()
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateGenerationFailure(f"Failed to generate self-signed certificate: {str(e)}")

    def _build_certificate(self) -> x509.Certificate:
        name = x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, self.host),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, 'slk local OAuth callback'),
        ])

        try:
            san = x509.IPAddress(ipaddress.ip_address(self.host))
        except ValueError:
            san = x509.DNSName(self.host)

        # Backdate slightly so small clock skew does not reject a fresh cert.
        now = datetime.now(timezone.utc)
        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self._key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + self.validity)
            .add_extension(x509.SubjectAlternativeName([san]), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([x509.oid.ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False
            )
            .sign(self._key, hashes.SHA256())
        )

    def fingerprint(self) -> str:
        """SHA-256 fingerprint in the colon-separated form browsers display."""
        digest = self.certificate.fingerprint(hashes.SHA256())
        return ':'.join('%02X' % b for b in digest)

    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def ssl_context(self) -> ssl.SSLContext:
        """
        Build a server-side SSL context holding this certificate.

        The ssl module can only load key material from files, so the PEMs go
        to a private temporary directory with the key encrypted under a random
        passphrase that never leaves memory, and the directory is removed as
        soon as the context has loaded them.

        Returns:
            Server-side SSLContext

        Raises:
            CertificateGenerationFailure: If the key was discarded or loading fails
        """
        if self._key is None:
            raise CertificateGenerationFailure("Certificate key has already been discarded")

        passphrase = secrets.token_bytes(32)
        key_pem = self._key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(passphrase)
        )

        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2

        tmp_dir = tempfile.mkdtemp(prefix='slk-')
        try:
            os.chmod(tmp_dir, 0o700)
            cert_path = os.path.join(tmp_dir, 'cert.pem')
            key_path = os.path.join(tmp_dir, 'key.pem')
            with open(cert_path, 'wb') as f:
                f.write(self.certificate_pem())
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, 'wb') as f:
                f.write(key_pem)
            ctx.load_cert_chain(certfile=cert_path, keyfile=key_path, password=passphrase)
        except (OSError, ssl.SSLError) as e:
            raise CertificateGenerationFailure(f"Failed to load self-signed certificate: {str(e)}")
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

        return ctx

    def discard(self):
        """Drop the private key; the certificate is unusable afterwards."""
        self._key = None
