from __future__ import annotations

import json
from typing import Final

DOCUMENT_FIELD: Final[str] = "mjml"


def interpret_body(raw: bytes) -> str:
    """Extract the MJML document from a raw request body.

    Two payload shapes are accepted:
    - JSON: ``{"mjml": "<mjml>...</mjml>"}``
    - legacy: the body itself is the document.

    Anything that is not a JSON object with a string ``mjml`` field is treated as
    a legacy payload. This never raises.
    """

    text = raw.decode("utf-8", errors="replace")

    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        return text

    if isinstance(payload, dict):
        document = payload.get(DOCUMENT_FIELD)
        if isinstance(document, str):
            return document
    return text
