"""
Check-in credentials that can be verified without a database round trip.

Credential format (rendered as a QR code):

    <event_id>_<queue_number>_<token>

    token = sha256("<identity_fact>_<queue_number>_<event_id>").hexdigest()[:16]

The identity fact is the participant's phone number at registration time.
A scanner that holds the event's registration list can recompute the token
from the phone number on the matching record, so a forged queue number
without the bound phone number is rejected.

Known limitation: there is no secret and no signature. Anyone who knows a
participant's phone number and queue number can recompute a valid token.
The token deters casual tampering and deduplicates scans; it is not a strong
credential. Adding a server-side secret (HMAC) would change the
verification contract for every QR code already issued.
"""

import base64
import hashlib
import hmac
import io
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from regdesk.core.config import get_settings
from regdesk.core.exceptions import InvalidFormat
from regdesk.services.phone import is_phone_field
from regdesk.schemas.registration import FieldValue

settings = get_settings()

SEPARATOR = "_"
_TOKEN_RE = re.compile(rf"^[0-9a-fA-F]{{{settings.CHECKIN_TOKEN_LENGTH}}}$")

FieldLike = Union[FieldValue, Mapping[str, str]]


@dataclass(frozen=True)
class ScannedCredential:
    event_id: str
    queue_number: str
    token: str


def derive_token(event_id: str, queue_number: str, identity_fact: str) -> str:
    digest = hashlib.sha256(
        f"{identity_fact}{SEPARATOR}{queue_number}{SEPARATOR}{event_id}".encode("utf-8")
    ).hexdigest()
    return digest[: settings.CHECKIN_TOKEN_LENGTH]


def build_credential(event_id: str, queue_number: str, identity_fact: str) -> str:
    token = derive_token(event_id, queue_number, identity_fact)
    return SEPARATOR.join((event_id, queue_number, token))


def parse_credential(raw: str) -> ScannedCredential:
    """
    Split a decoded QR string into its three segments.

    The token must be exactly CHECKIN_TOKEN_LENGTH hex characters; anything
    else cannot have been issued by us and is rejected before verification.
    """
    parts = (raw or "").strip().split(SEPARATOR)
    if len(parts) != 3 or not all(parts):
        raise InvalidFormat(detail=f"Expected 3 segments, got {len(parts)}")
    event_id, queue_number, token = parts
    if not _TOKEN_RE.fullmatch(token):
        raise InvalidFormat(detail="Malformed check-in token")
    return ScannedCredential(event_id=event_id, queue_number=queue_number, token=token)


def verify(credential: str, candidate_identity_fact: str) -> bool:
    """Recompute the token from the candidate record's identity fact."""
    try:
        scanned = parse_credential(credential)
    except InvalidFormat:
        return False
    return verify_scanned(scanned, candidate_identity_fact)


def verify_scanned(scanned: ScannedCredential, candidate_identity_fact: str) -> bool:
    expected = derive_token(scanned.event_id, scanned.queue_number, candidate_identity_fact)
    return hmac.compare_digest(expected.encode("ascii"), scanned.token.lower().encode("utf-8"))


def render_qr_code(payload: str) -> str:
    """PNG data URL of the credential, high error correction for printed badges."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def _get(field: FieldLike, key: str) -> str:
    if isinstance(field, FieldValue):
        return getattr(field, key)
    return str(field.get(key, "") or "")


def extract_phone(fields: Iterable[FieldLike]) -> str:
    for field in fields:
        if is_phone_field(_get(field, "id"), _get(field, "label"), _get(field, "type")):
            return _get(field, "value")
    return ""


def extract_name(fields: Iterable[FieldLike]) -> str:
    for field in fields:
        if _get(field, "type") == "name" or "name" in _get(field, "label").lower():
            return _get(field, "value")
    return ""
