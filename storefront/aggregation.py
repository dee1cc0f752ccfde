"""Folding of one-to-many join rows into nested records.

A ``products LEFT JOIN product_images`` query yields one row per
product/image pair (or a single row with a NULL image for products without
images). :func:`fold_images` turns that flat shape into one record per
product carrying an ``images`` list, which is what the JSON API returns.
"""
import base64
import binascii
from typing import Any, Dict, Iterable, List, Mapping

DATA_URI_PREFIX = "data:image/jpeg;base64,"


def encode_image(data: bytes) -> str:
    return DATA_URI_PREFIX + base64.b64encode(data).decode("ascii")


def decode_image(uri: str) -> bytes:
    """Inverse of :func:`encode_image`. Accepts any ``data:...;base64,`` prefix."""
    if not uri.startswith("data:") or ";base64," not in uri:
        raise ValueError("not a base64 data URI")
    payload = uri.split(";base64,", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError("invalid base64 payload") from e


def fold_images(
    rows: Iterable[Mapping[str, Any]],
    key: str = "id",
    image_field: str = "image",
) -> List[Dict[str, Any]]:
    """Collapse flat join rows into one dict per distinct ``key``.

    - Output order is the order in which each key was first seen.
    - Scalar fields come from the first row seen for a key.
    - Every non-null ``image_field`` value, from the first row or any
      repeat, is appended to ``images`` as a data URI.
    - A key with no images gets an empty list, never a missing entry.
    """
    folded: Dict[Any, Dict[str, Any]] = {}
    for row in rows:
        entity_id = row[key]
        record = folded.get(entity_id)
        if record is None:
            record = {name: value for name, value in row.items() if name != image_field}
            record["images"] = []
            folded[entity_id] = record
        image = row.get(image_field)
        if image is not None:
            record["images"].append(encode_image(image))
    return list(folded.values())
