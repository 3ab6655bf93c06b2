import hmac
import hashlib
from typing import Optional, Union


def sign_data(secret: str, payload: bytes) -> str:
    """
    Return the `X-Hub-Signature` value GitHub sends for this payload.
    """
    mac = hmac.new(
        secret.encode(),
        msg=payload,
        digestmod=hashlib.sha1,
    )
    return "sha1=" + mac.hexdigest()


def verify_signature(
    secret: str,
    payload: bytes,
    signature: Optional[Union[str, bytes]],
) -> bool:
    """
    Verify GitHub webhook signature using HMAC SHA-1.

    Returns False on any validation failure.
    """
    if not signature or not secret:
        return False

    try:
        expected = sign_data(secret, payload).encode()
        if isinstance(signature, str):
            signature = signature.strip().encode()
        return hmac.compare_digest(expected, signature)
    except (TypeError, ValueError, UnicodeError):
        # Never raise from signature verification
        return False
