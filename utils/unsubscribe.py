"""
Unsubscribe link signing.

A link carries the subscriber email, the owning user's uuid and a token
t = hex(HMAC-SHA256(secret, "{uuid}:{email}")). The unsubscribe endpoint
recomputes the token, so links cannot be forged for other addresses.
"""

import hashlib
import hmac
from urllib.parse import urlencode


def unsubscribe_token(secret: str, user_uuid: str, email: str) -> str:
    if not secret:
        raise ValueError("unsubscribe secret is not configured")
    message = f"{user_uuid}:{email}".encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def verify_unsubscribe_token(secret: str, user_uuid: str, email: str, token: str) -> bool:
    if not token or not email or not user_uuid:
        return False
    expected = unsubscribe_token(secret, user_uuid, email)
    return hmac.compare_digest(expected, token)


def unsubscribe_url(app_url: str, secret: str, user_uuid: str, email: str) -> str:
    """
    Example:
        >>> unsubscribe_url('https://mail.example.com', 's3cret', 'u-1', 'a@b.co')  # doctest: +ELLIPSIS
        'https://mail.example.com/api/unsubscribe?email=a%40b.co&uuid=u-1&t=...'
    """
    query = urlencode({
        'email': email,
        'uuid': user_uuid,
        't': unsubscribe_token(secret, user_uuid, email),
    })
    return f"{app_url.rstrip('/')}/api/unsubscribe?{query}"
