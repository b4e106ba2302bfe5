"""TLS server context.

The certificate and key come from a CertificateProvider. The context is built by the
server bootstrap at startup and handed to the listening site.

Key exchange groups are left at the OpenSSL defaults, which offer X25519 first and include
P-256. SSLContext.set_ecdh_curve accepts only a single curve and would drop X25519.
"""

import logging
import os
import ssl
from abc import ABC, abstractmethod
from typing import Tuple

logger = logging.getLogger(__name__)


class CertificateProvider(ABC):
    @abstractmethod
    def get_certificate_and_key(self) -> Tuple[str, str]:
        """Return paths to the PEM certificate chain and private key."""


class FileCertificateProvider(CertificateProvider):
    """Certificate and key read from fixed paths on disk."""

    def __init__(self, cert_file: str, key_file: str) -> None:
        self.cert_file = cert_file
        self.key_file = key_file

    def get_certificate_and_key(self) -> Tuple[str, str]:
        for path in (self.cert_file, self.key_file):
            if not os.path.isfile(path):
                raise FileNotFoundError(f"TLS file not found: {path}")
        return self.cert_file, self.key_file


def build_ssl_context(provider: CertificateProvider) -> ssl.SSLContext:
    """
    Create a server-side TLS context.

    Raises:
        FileNotFoundError: If the certificate or key is missing
        ssl.SSLError: If the certificate or key cannot be loaded
    """
    cert_file, key_file = provider.get_certificate_and_key()

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(cert_file, key_file)

    logger.debug("Loaded TLS certificate %s", cert_file)
    return context
