"""Webhook signature checks for NOWPayments IPN callbacks.

The gateway signs the JSON body with its keys sorted, serialised the way
JavaScript's ``JSON.stringify`` does it, using HMAC-SHA512 and the IPN
secret from the merchant dashboard. The hex digest arrives in the
``x-nowpayments-sig`` header.
"""
from decimal import Decimal
import hashlib
import hmac
import json
import math
from typing import Any, Dict

SIGNATURE_HEADER = "x-nowpayments-sig"


def _js_number(value: float) -> str:
    """Render a float as ECMAScript Number::toString does (1.0 -> "1", 5e-05 -> "0.00005")."""
    if not math.isfinite(value):
        return "null"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    # repr is the shortest round-tripping form, the same digits JS picks
    _, digits, exponent = Decimal(repr(abs(value))).as_tuple()
    s = "".join(map(str, digits)).rstrip("0")
    exponent += len(digits) - len(s)
    k = len(s)
    n = exponent + k
    if k <= n <= 21:
        return sign + s + "0" * (n - k)
    if 0 < n <= 21:
        return sign + s[:n] + "." + s[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * -n + s
    e = n - 1
    mantissa = s if k == 1 else s[0] + "." + s[1:]
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def _serialize(value: Any) -> str:
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: kv[0])
        return "{" + ",".join(f"{_serialize(str(k))}:{_serialize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_serialize(v) for v in value) + "]"
    if isinstance(value, float):
        return _js_number(value)
    return json.dumps(value, ensure_ascii=False)


def canonical_payload(payload: Dict[str, Any]) -> str:
    return _serialize(payload)


def sign_payload(payload: Dict[str, Any], secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), canonical_payload(payload).encode("utf-8"), hashlib.sha512)
    return digest.hexdigest()


def verify_signature(payload: Dict[str, Any], signature: str, secret: str) -> bool:
    if not secret or not signature:
        return False
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
