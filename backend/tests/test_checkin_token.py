"""
Tests for check-in credential derivation, parsing and verification.
"""

import base64
import hashlib

import pytest

from regdesk.core.exceptions import InvalidFormat
from regdesk.services.checkin_token import (
    build_credential,
    derive_token,
    extract_name,
    extract_phone,
    parse_credential,
    render_qr_code,
    verify,
)

EVENT_ID = "4f1c2d3e5a6b7c8d9e0f1a2b3c4d5e6f"
PHONE = "+6591234567"


def test_token_is_truncated_sha256_of_identity_queue_event():
    expected = hashlib.sha256(f"{PHONE}_007_{EVENT_ID}".encode()).hexdigest()[:16]
    assert derive_token(EVENT_ID, "007", PHONE) == expected
    assert len(expected) == 16


def test_credential_format():
    credential = build_credential(EVENT_ID, "007", PHONE)
    event_id, queue_number, token = credential.split("_")
    assert event_id == EVENT_ID
    assert queue_number == "007"
    assert token == derive_token(EVENT_ID, "007", PHONE)


def test_verify_accepts_issued_credential():
    assert verify(build_credential(EVENT_ID, "007", PHONE), PHONE) is True


def test_verify_rejects_other_identity():
    assert verify(build_credential(EVENT_ID, "007", PHONE), "+6598765432") is False


@pytest.mark.parametrize("position", [0, 7, 15])
def test_verify_rejects_tampered_token(position):
    credential = build_credential(EVENT_ID, "007", PHONE)
    prefix, token = credential.rsplit("_", 1)
    flipped = "0" if token[position] != "0" else "1"
    tampered = token[:position] + flipped + token[position + 1:]
    assert verify(f"{prefix}_{tampered}", PHONE) is False


def test_verify_rejects_swapped_queue_number():
    token = derive_token(EVENT_ID, "007", PHONE)
    assert verify(f"{EVENT_ID}_008_{token}", PHONE) is False


def test_queue_number_is_compared_as_string():
    token = derive_token(EVENT_ID, "007", PHONE)
    assert verify(f"{EVENT_ID}_7_{token}", PHONE) is False


@pytest.mark.parametrize("raw", ["", "abc", "a_b", "a_b_c_d", "a__c", "_b_c"])
def test_parse_rejects_malformed(raw):
    with pytest.raises(InvalidFormat):
        parse_credential(raw)
    assert verify(raw, PHONE) is False


def test_parse_strips_scanner_whitespace():
    credential = build_credential(EVENT_ID, "U001", PHONE)
    scanned = parse_credential(f"  {credential}\n")
    assert scanned.queue_number == "U001"


def test_render_qr_code_is_png_data_url():
    data_url = render_qr_code(build_credential(EVENT_ID, "001", PHONE))
    assert data_url.startswith("data:image/png;base64,")
    png = base64.b64decode(data_url.split(",", 1)[1])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_extract_phone_and_name_from_field_dicts():
    fields = [
        {"id": "f1", "label": "Full Name", "type": "text", "value": "Lim"},
        {"id": "f2", "label": "Contact", "type": "phone", "value": PHONE},
    ]
    assert extract_name(fields) == "Lim"
    assert extract_phone(fields) == PHONE
    assert extract_phone([]) == ""


@pytest.mark.parametrize(
    "token",
    ["cafécafécafécaf", "éé", "0123456789abcde", "0123456789abcdef0", "0123456789abcdeg"],
)
def test_parse_rejects_tokens_that_are_not_issued_hex(token):
    raw = f"{EVENT_ID}_007_{token}"
    with pytest.raises(InvalidFormat):
        parse_credential(raw)
    assert verify(raw, PHONE) is False


def test_verify_accepts_upper_case_token():
    credential = build_credential(EVENT_ID, "007", PHONE)
    prefix, token = credential.rsplit("_", 1)
    assert verify(f"{prefix}_{token.upper()}", PHONE) is True


def test_extract_phone_matches_field_id():
    fields = [
        {"id": "name", "label": "Full Name", "type": "name", "value": "Lim"},
        {"id": "phone", "label": "Contact", "type": "text", "value": PHONE},
    ]
    assert extract_phone(fields) == PHONE
