import json
from typing import Any, Dict, Mapping, Optional

from concierge.errors import VerificationError
from concierge.logger import get_logger
from concierge.security.webhook_verify import verify_signature


logger = get_logger("concierge.github.webhook")

DELIVERY_HEADER = "x-github-delivery"
EVENT_HEADER = "x-github-event"
SIGNATURE_HEADER = "x-hub-signature"


def _lowered(headers: Mapping[str, str]) -> Dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


def check_delivery(
    headers: Mapping[str, str],
    raw_body: bytes,
    secret: Optional[str],
) -> Dict[str, Any]:
    """
    Admit an inbound GitHub webhook delivery.

    Returns the decoded payload. Raises VerificationError with the reason
    shown to the sender; checks stop at the first failure.
    """
    headers = _lowered(headers)

    if headers.get(DELIVERY_HEADER) is None:
        raise VerificationError("No id found in the request")

    if headers.get(EVENT_HEADER) is None:
        raise VerificationError("No event found in the request")

    signature = headers.get(SIGNATURE_HEADER) or ""
    if secret and not signature:
        raise VerificationError("No signature found in the request")

    if secret and not verify_signature(secret, raw_body, signature):
        logger.warning("Invalid GitHub webhook signature")
        raise VerificationError("Failed to verify signature")

    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        payload = None

    if not isinstance(payload, dict):
        raise VerificationError("Expected request body to be a JSON object")

    return payload
