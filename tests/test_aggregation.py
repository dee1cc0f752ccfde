import base64

import pytest

from storefront.aggregation import decode_image, encode_image, fold_images


def test_fold_groups_images_per_product():
    rows = [
        {"id": 7, "title": "Lamp", "image": b"front"},
        {"id": 7, "title": "Lamp", "image": None},
        {"id": 7, "title": "Lamp", "image": b"side"},
        {"id": 9, "title": "Rug", "image": None},
    ]
    folded = fold_images(rows)

    assert [p["id"] for p in folded] == [7, 9]
    assert len(folded[0]["images"]) == 2
    assert folded[1]["images"] == []
    assert "image" not in folded[0]


def test_fold_keeps_first_seen_order_and_first_row_scalars():
    rows = [
        {"id": 3, "title": "first", "image": None},
        {"id": 1, "title": "one", "image": b"x"},
        {"id": 3, "title": "changed", "image": b"y"},
    ]
    folded = fold_images(rows)
    assert [p["id"] for p in folded] == [3, 1]
    assert folded[0]["title"] == "first"
    assert folded[0]["images"] == [encode_image(b"y")]


def test_fold_empty_input():
    assert fold_images([]) == []


def test_fold_custom_key_and_field():
    rows = [{"deal_id": 1, "photo": b"a"}, {"deal_id": 1, "photo": b"b"}]
    folded = fold_images(rows, key="deal_id", image_field="photo")
    assert folded == [{"deal_id": 1, "images": [encode_image(b"a"), encode_image(b"b")]}]


def test_encode_image_is_jpeg_data_uri():
    raw = bytes(range(256))
    uri = encode_image(raw)
    assert uri.startswith("data:image/jpeg;base64,")
    assert base64.b64decode(uri.split(",", 1)[1]) == raw
    assert decode_image(uri) == raw


@pytest.mark.parametrize("bad", ["not a uri", "data:image/jpeg;base64,@@@"])
def test_decode_image_rejects_garbage(bad):
    with pytest.raises(ValueError):
        decode_image(bad)
