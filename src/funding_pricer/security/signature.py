"""
HMAC verification of Cafe24 launch requests.

Cafe24 signs the launch URL's query string exactly as it sends it: the digest
covers every byte before the trailing ``&hmac=`` parameter, in the original
order and encoding. Parsing and re-serialising the parameters would change
those bytes, so the signed part is cut out of the raw query string instead.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional, Tuple
from urllib.parse import unquote, urlsplit

from funding_pricer.utils.logger import get_logger, log_event

logger = get_logger(__name__)

SIGNATURE_DELIMITER = "&hmac="


def split_signed_query(url: str) -> Optional[Tuple[str, str]]:
    """
    Split the raw query string at the last ``&hmac=``.

    Returns:
        ``(signed_query, raw_signature)`` with the signature still
        URL-encoded, or None if there is no signature
    """
    query = urlsplit(url).query
    index = query.rfind(SIGNATURE_DELIMITER)
    if index == -1:
        return None
    return query[:index], query[index + len(SIGNATURE_DELIMITER):]


def extract_signed_query(url: str) -> Optional[str]:
    """
    Return the exact substring of the query string that was signed.

    Returns:
        Everything before the last ``&hmac=``, or None if there is no signature
    """
    parts = split_signed_query(url)
    return parts[0] if parts is not None else None


def compute_signature(signed_query: str, secret: str) -> str:
    """Base64 HMAC-SHA256 of ``signed_query`` keyed with ``secret``."""
    digest = hmac.new(
        secret.encode("utf-8"),
        signed_query.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(url: str, signature: Optional[str], secret: str) -> bool:
    """
    Verify that a launch request was signed by Cafe24.

    Args:
        url: Full request URL including the raw query string
        signature: Received ``hmac`` value (URL-encoded or already decoded)
        secret: Shared secret (the app's client secret)

    Returns:
        True only if the recomputed digest matches. Never raises.
    """
    if not signature or not secret:
        log_event(logger, logging.ERROR, "signature.rejected", reason="missing signature or secret")
        return False

    try:
        signed_query = extract_signed_query(url)
        if signed_query is None:
            log_event(
                logger, logging.ERROR, "signature.rejected",
                reason="hmac parameter not found",
                query=urlsplit(url).query[:200],
            )
            return False

        computed = compute_signature(signed_query, secret)
        received = unquote(signature)

        is_valid = hmac.compare_digest(computed.encode("utf-8"), received.encode("utf-8"))

        if is_valid:
            log_event(
                logger, logging.INFO, "signature.verified",
                param_count=len(signed_query.split("&")),
            )
        else:
            log_event(
                logger, logging.ERROR, "signature.rejected",
                reason="digest mismatch",
                signed_query=signed_query,
                received=received,
                computed=computed,
            )

        return is_valid

    except (ValueError, TypeError) as e:
        log_event(logger, logging.ERROR, "signature.rejected", reason=f"verification error: {e}")
        return False
