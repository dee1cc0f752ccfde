import html
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import bleach

# Business rule: money is stored rounded to 2 decimals


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def sanitize_text(value: Optional[str]) -> str:
    """Clean catalog text supplied by a client before it is stored or searched.

    - Removes NULL bytes
    - Strips HTML tags using bleach.clean(..., strip=True), then undoes the
      entity escaping bleach applies so "&" and "<" are stored as typed
    - Collapses runs of whitespace and trims
    """
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = html.unescape(bleach.clean(val, tags=[], strip=True))
    val = re.sub(r"\s+", " ", val)
    return val.strip()


def escape_like(value: str, escape: str = "\\") -> str:
    # LIKE wildcards typed by a client are matched literally
    return (
        value.replace(escape, escape * 2)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )
