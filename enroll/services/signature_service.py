"""Webhook signature verification.

Header format: a ';' or ','-separated key=value list, e.g.

    ts=1718000000,v1=5f2c...e9

Two candidate signatures are accepted:
  (a) HMAC-SHA256(secret, "{ts}.{raw_body}") when `ts` is present and within
      the replay window of the current time;
  (b) HMAC-SHA256(secret, raw_body), the legacy unsigned-timestamp mode.

A `ts` outside the window rejects the request even if (a) would match.
When no secret is configured verification is skipped entirely.
"""

import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_REPLAY_WINDOW_SECONDS = 600

SIGNATURE_HEADERS = ("X-Signature", "X-Hub-Signature-256")
REQUEST_ID_HEADERS = ("X-Request-Id", "X-Correlation-Id")

_SIGNATURE_KEYS = ("v1", "signature", "sha256")


class WebhookSignatureError(Exception):
    """Signature missing, malformed, stale or not matching."""

    def __init__(self, message, request_id=None):
        super().__init__(message)
        self.request_id = request_id


def first_header(headers, names):
    """Return the first non-empty header value among `names`, or None."""
    for name in names:
        value = headers.get(name)
        if value:
            return value.strip()
    return None


def parse_signature_header(header):
    """Parse 'ts=..,v1=..' into (ts, signature).

    A header with no key=value pairs is treated as a bare signature.
    Returns (None, None) for an empty header.
    """
    if not header:
        return None, None

    parts = [p.strip() for p in header.replace(";", ",").split(",") if p.strip()]
    pairs = {}
    for part in parts:
        if "=" not in part:
            continue
        key, _, value = part.partition("=")
        pairs[key.strip().lower()] = value.strip()

    if not pairs:
        return None, header.strip()

    signature = None
    for key in _SIGNATURE_KEYS:
        if pairs.get(key):
            signature = pairs[key]
            break
    return pairs.get("ts"), signature


def compute_signature(secret, message):
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(raw_body, signature_header, secret, request_id=None,
                     now=None, window_seconds=DEFAULT_REPLAY_WINDOW_SECONDS):
    """Validate a webhook request.

    Args:
        raw_body: Request body exactly as received (bytes).
        signature_header: Value of the signature header, or None.
        secret: Signing secret; None/empty disables verification.
        request_id: Provider request id, carried on the error for correlation.
        now: Current unix time (injectable for tests).

    Raises WebhookSignatureError if the request must be rejected.
    """
    if not secret:
        logger.warning("Webhook signature verification skipped — no secret configured")
        return

    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    ts, signature = parse_signature_header(signature_header)
    if not signature:
        raise WebhookSignatureError("Missing signature", request_id=request_id)

    signature = signature.lower()
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]

    candidates = []

    if ts is not None:
        try:
            ts_value = int(ts)
        except ValueError:
            raise WebhookSignatureError("Malformed signature timestamp", request_id=request_id)

        current = int(now if now is not None else time.time())
        if abs(current - ts_value) > window_seconds:
            raise WebhookSignatureError("Signature timestamp outside replay window", request_id=request_id)

        candidates.append(compute_signature(secret, f"{ts}.".encode("utf-8") + raw_body))

    candidates.append(compute_signature(secret, raw_body))

    # Compare against every candidate so timing does not reveal which matched.
    matched = False
    for expected in candidates:
        if hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            matched = True

    if not matched:
        raise WebhookSignatureError("Signature mismatch", request_id=request_id)
