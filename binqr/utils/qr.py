"""QR payloads printed on boxes.

The payload is the literal ``BinQR:`` prefix followed by the box id. The same
string is stored on the box and used for look-ups, so the prefix must never
change.
"""

import uuid

QR_PREFIX = "BinQR:"


def new_box_id() -> str:
    return str(uuid.uuid4())


def qr_payload(box_id: str) -> str:
    return f"{QR_PREFIX}{box_id}"


def parse_qr_payload(payload: str) -> str | None:
    """Return the box id encoded in a scanned payload, or None if it is not ours."""
    payload = payload.strip()
    if not payload.startswith(QR_PREFIX):
        return None
    box_id = payload[len(QR_PREFIX):]
    return box_id or None
