from decimal import Decimal

from storefront.utils import escape_like, round_amount, sanitize_text


def test_sanitize_removes_script_tags():
    s = "<script>alert(1)</script>Bob"
    out = sanitize_text(s)
    assert "script" not in out.lower()
    assert "bob" in out.lower()


def test_sanitize_collapses_whitespace_and_nulls():
    assert sanitize_text("  Desk\x00 \n Lamp  ") == "Desk Lamp"
    assert sanitize_text(None) == ""


def test_escape_like_wildcards():
    assert escape_like("50%_off") == "50\\%\\_off"
    assert escape_like("a\\b") == "a\\\\b"


def test_amount_rounding_regression():
    # Guard against regressions: 2-decimal rounding half up
    assert str(round_amount(Decimal("2.675"))) == "2.68"
    assert round_amount(Decimal("10.125")) == Decimal("10.13")


def test_sanitize_keeps_ampersands_and_angle_brackets_literal():
    assert sanitize_text("Salt & Pepper") == "Salt & Pepper"
    assert sanitize_text("fits 1 < x > 0") == "fits 1 < x > 0"
    assert sanitize_text("<b>Bold</b> & brave") == "Bold & brave"
