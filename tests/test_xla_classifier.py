import pytest

from xla.xla_classifier import classify, is_tag, is_url, is_file_path, numeric_value
from xla.xla_datatypes import Subtype


@pytest.mark.parametrize("token, expected", [
    ("0", Subtype.INTEGER),
    ("42", Subtype.INTEGER),
    ("-7", Subtype.INTEGER),
    ("+7", Subtype.INTEGER),
    ("1234567", Subtype.INTEGER),
    ("1_000", Subtype.INTEGER),
    ("1_000_000", Subtype.INTEGER),
    ("0x1F", Subtype.HEX),
    ("0xdeadBEEF", Subtype.HEX),
    ("0b1010", Subtype.BINARY),
    ("0b0", Subtype.BINARY),
    ("3.14", Subtype.REAL),
    ("-2.5e-3", Subtype.REAL),
    ("1e10", Subtype.REAL),
    (".5", Subtype.REAL),
    ("https://example.com/path?q=1", Subtype.URL),
    ("ftp://files.example.org", Subtype.URL),
    ("/usr/local/bin", Subtype.FILE_PATH),
    ("notes/today.txt", Subtype.FILE_PATH),
    ("hello", Subtype.NONE),
    ("def", Subtype.NONE),
    ("+", Subtype.NONE),
])
def test_classify(token, expected):
    assert classify(token) is expected


@pytest.mark.parametrize("token", ["1_00", "10_00", "1__000", "_100"])
def test_underscores_only_separate_groups_of_three(token):
    assert classify(token) is not Subtype.INTEGER


@pytest.mark.parametrize("token", ["0x", "0xZZ", "0b", "0b102", "inf", "nan"])
def test_malformed_numeric_literals_are_untyped(token):
    assert classify(token) is Subtype.NONE


def test_priority_integer_before_real():
    # "10" is also a valid float literal
    assert classify("10") is Subtype.INTEGER


def test_is_tag():
    assert is_tag(":urgent")
    assert not is_tag("urgent")
    assert not is_tag("a:b")


def test_is_url_requires_scheme_and_host():
    assert is_url("http://localhost:8080")
    assert not is_url("http:foo")
    assert not is_url("localhost")


def test_is_file_path():
    assert is_file_path("/etc")
    assert is_file_path("a/b")
    assert not is_file_path("ab")


@pytest.mark.parametrize("text, subtype, expected", [
    ("1_000", Subtype.INTEGER, 1000),
    ("-12", Subtype.INTEGER, -12),
    ("0xff", Subtype.HEX, 255),
    ("0b101", Subtype.BINARY, 5),
    ("2.5", Subtype.REAL, 2.5),
])
def test_numeric_value(text, subtype, expected):
    assert numeric_value(text, subtype) == expected


def test_numeric_value_rejects_non_numeric_subtypes():
    with pytest.raises(ValueError):
        numeric_value("hello", Subtype.NONE)
