"""
SNS message signature verification.

Amazon SNS signs every HTTP(S) delivery. The signature covers a canonical
string built from a fixed, type-dependent list of message keys, each written
as "Key\\nValue\\n" in that order. It is an RSA PKCS#1 v1.5 signature made with
the key in the X.509 certificate at SigningCertURL, using SHA1 for
SignatureVersion 1 and SHA256 for SignatureVersion 2.
"""

import base64
import re
import threading
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from logging_config import get_logger

logger = get_logger(__name__)

SNS_CERT_HOST = re.compile(r'^sns\.[a-z0-9-]+\.amazonaws\.com(\.cn)?$')

NOTIFICATION_KEYS = ('Message', 'MessageId', 'Subject', 'Timestamp', 'TopicArn', 'Type')
CONFIRMATION_KEYS = ('Message', 'MessageId', 'SubscribeURL', 'Timestamp', 'Token', 'TopicArn', 'Type')

SIGNATURE_HASHES = {
    '1': hashes.SHA1,
    '2': hashes.SHA256,
}


class SignatureVerificationError(Exception):
    """Raised when an SNS message fails signature verification"""
    pass


def canonical_string(message: Dict[str, Any]) -> bytes:
    """
    Build the string SNS signed for this message.

    Notifications omit Subject when it is absent; confirmations always use
    their full key list.
    """
    if message.get('Type') == 'Notification':
        keys = NOTIFICATION_KEYS
    else:
        keys = CONFIRMATION_KEYS

    parts = []
    for key in keys:
        value = message.get(key)
        if value is None:
            if key == 'Subject':
                continue
            raise SignatureVerificationError(f"Missing '{key}' in message")
        parts.append(f"{key}\n{value}\n")
    return ''.join(parts).encode('utf-8')


def validate_cert_url(cert_url: Optional[str]) -> str:
    """
    Raises:
        SignatureVerificationError: Unless the URL is https on an SNS host
    """
    if not cert_url:
        raise SignatureVerificationError("Missing SigningCertURL")
    parsed = urlparse(cert_url)
    if parsed.scheme != 'https' or not SNS_CERT_HOST.match(parsed.hostname or ''):
        raise SignatureVerificationError(f"Untrusted SigningCertURL: {cert_url}")
    return cert_url


class SnsMessageVerifier:
    """Verifies SNS messages, caching signing certificates per URL"""

    def __init__(self, timeout: int = 10, http=None):
        """
        Args:
            timeout: Certificate download timeout in seconds
            http: Object with a requests-compatible get(); defaults to requests
        """
        self.timeout = timeout
        self.http = http or requests
        self._certs: Dict[str, x509.Certificate] = {}
        self._lock = threading.Lock()

    def _certificate(self, cert_url: str) -> x509.Certificate:
        with self._lock:
            cert = self._certs.get(cert_url)
        if cert is not None:
            return cert

        try:
            response = self.http.get(cert_url, timeout=self.timeout)
            response.raise_for_status()
            cert = x509.load_pem_x509_certificate(response.content)
        except requests.RequestException as e:
            raise SignatureVerificationError(f"Unable to fetch signing certificate: {e}") from e
        except ValueError as e:
            raise SignatureVerificationError("Signing certificate is not valid PEM") from e

        with self._lock:
            self._certs[cert_url] = cert
        return cert

    def verify(self, message: Dict[str, Any]) -> None:
        """
        Verify a decoded SNS message.

        Raises:
            SignatureVerificationError: On any failure
        """
        if not isinstance(message, dict):
            raise SignatureVerificationError("Message must be an object")

        hash_cls = SIGNATURE_HASHES.get(str(message.get('SignatureVersion', '')))
        if hash_cls is None:
            raise SignatureVerificationError(
                f"Unsupported SignatureVersion: {message.get('SignatureVersion')}"
            )

        cert_url = validate_cert_url(message.get('SigningCertURL'))

        try:
            signature = base64.b64decode(message.get('Signature') or '', validate=True)
        except (ValueError, TypeError) as e:
            raise SignatureVerificationError("Signature is not valid base64") from e
        if not signature:
            raise SignatureVerificationError("Missing Signature")

        payload = canonical_string(message)
        public_key = self._certificate(cert_url).public_key()
        try:
            public_key.verify(signature, payload, padding.PKCS1v15(), hash_cls())
        except InvalidSignature as e:
            raise SignatureVerificationError("Signature does not match") from e
        except (TypeError, ValueError) as e:
            raise SignatureVerificationError("Signing certificate key is not RSA") from e
