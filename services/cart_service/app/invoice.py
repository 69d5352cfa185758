"""Invoice numbers of the form ``INV-YYYYMMDD-XXXXXX``.

The date part is the UTC generation date. The suffix is six characters drawn
from ``[A-Za-z0-9]``; uniqueness is only probabilistic here, the unique
constraint on ``transactions.no_invoice`` is what enforces it.
"""

from __future__ import annotations

import re
import secrets
import string
from datetime import datetime, timezone

INVOICE_PREFIX = "INV"
SUFFIX_LENGTH = 6
SUFFIX_ALPHABET = string.ascii_letters + string.digits

_INVOICE_RE = re.compile(rf"^{INVOICE_PREFIX}-\d{{8}}-[A-Za-z0-9]{{{SUFFIX_LENGTH}}}$")


def generate_invoice_number(now: datetime | None = None) -> str:
    moment = now or datetime.now(tz=timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{INVOICE_PREFIX}-{moment:%Y%m%d}-{suffix}"


def is_invoice_number(value: str) -> bool:
    return bool(_INVOICE_RE.match(value))
