from anonchat.constants import MAX_MESSAGE_LENGTH
from anonchat.text import clean_message, sanitize, truncate


def test_truncate_to_limit():
    assert truncate("x" * 600) == "x" * MAX_MESSAGE_LENGTH
    assert truncate("short") == "short"
    assert truncate(None) == ""
    assert truncate(12345) == "12345"


def test_script_is_escaped():
    out = sanitize("<script>x</script>")
    assert "<script>" not in out
    assert out == "&lt;script&gt;x&lt;/script&gt;"


def test_attributes_cannot_smuggle_handlers():
    out = sanitize('<img src=x onerror="alert(1)">')
    assert "<img" not in out


def test_truncate_happens_before_escaping():
    out = clean_message("a" * 499 + "<b>")
    assert out == "a" * 499 + "&lt;"
