"""
Model -> response conversion shared by the registration, check-in and sync
routes. Personally-identifying answers are masked unless the caller may see
them.

The QR code carries the full check-in credential, so it travels with the
unmasked answers. The only other way to get it is `include_credential`,
used where the caller has already proven the bound phone number.
"""

from collections import Counter
from typing import Iterable, Optional

from regdesk.core.security import Caller
from regdesk.models.order import Order, ParticipantGroup
from regdesk.schemas.registration import FieldValue, GroupResponse, OrderResponse
from regdesk.services.phone import is_phone_field

POSTAL_MARKERS = ("postal", "postcode", "zip")


def is_admin(caller: Optional[Caller]) -> bool:
    return caller is not None and caller.is_admin


def mask_value(value: str, visible: int = 4) -> str:
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    head = "+" if value.startswith("+") else ""
    hidden = len(value) - visible - len(head)
    return head + "*" * hidden + value[-visible:]


def _is_postal_field(field: dict) -> bool:
    text = f"{field.get('id', '')} {field.get('label', '')} {field.get('type', '')}".lower()
    return any(marker in text for marker in POSTAL_MARKERS)


def present_fields(fields: Iterable[dict], reveal_pii: bool) -> list[FieldValue]:
    presented = []
    for field in fields:
        value = field.get("value", "")
        if not reveal_pii:
            if is_phone_field(field.get("id", ""), field.get("label", ""), field.get("type", "")):
                value = mask_value(value)
            elif _is_postal_field(field):
                value = mask_value(value, visible=2)
        presented.append(
            FieldValue(
                id=field["id"],
                label=field.get("label") or field["id"],
                type=field.get("type") or "text",
                value=value,
            )
        )
    return presented


def present_group(
    group: ParticipantGroup,
    reveal_pii: bool = False,
    duplicates: Optional[set[str]] = None,
    include_credential: bool = False,
) -> GroupResponse:
    return GroupResponse(
        order_id=group.order_id,
        group_id=group.group_id,
        event_id=group.event_id,
        queue_number=group.queue_number,
        fields=present_fields(group.fields, reveal_pii),
        attendance=group.attendance,
        cancelled=group.cancelled,
        qr_code=group.qr_code if reveal_pii or include_credential else None,
        last_updated=group.last_updated,
        duplicate_phone=bool(duplicates and group.phone_number in duplicates),
    )


def duplicate_phones(groups: Iterable[ParticipantGroup]) -> set[str]:
    """Phone numbers shared by more than one group of the same event."""
    counts = Counter((g.event_id, g.phone_number) for g in groups if g.phone_number)
    return {phone for (_, phone), n in counts.items() if n > 1}


def present_order(order: Order, reveal_pii: bool = False) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        event_id=order.event_id,
        buyer_id=order.buyer_id,
        created_at=order.created_at,
        groups=[present_group(g, reveal_pii) for g in order.groups],
    )


def can_see_order(order: Order, caller: Optional[Caller]) -> bool:
    return is_admin(caller) or (
        caller is not None and order.buyer_id is not None and caller.id == order.buyer_id
    )
