"""
Lexical classification of atoms.

Given the text of one atom, decide which literal family it looks like. The
checks run in a fixed priority order and the first match wins.
"""
import os
import re
from urllib.parse import urlparse

from xla.xla_datatypes import Subtype

# Plain digits, or digits grouped in threes with '_' separators (1_000_000).
_INTEGER = re.compile(r"^[-+]?(?:[0-9]+|[0-9]{1,3}(?:_[0-9]{3})+)$")
_HEX_DIGITS = re.compile(r"^[0-9a-fA-F]+$")
_BINARY_DIGITS = re.compile(r"^[01]+$")
_REAL = re.compile(r"^[-+]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?$")


def is_tag(token: str) -> bool:
    return token.startswith(":")


def is_url(token: str) -> bool:
    try:
        parts = urlparse(token)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def is_file_path(token: str) -> bool:
    if os.path.isabs(token):
        return True
    if os.sep in token:
        return True
    return bool(os.altsep) and os.altsep in token


def classify(token: str) -> Subtype:
    """Returns the subtype of a whitespace- and delimiter-free token."""
    if _INTEGER.match(token):
        return Subtype.INTEGER
    if token.startswith("0x") and _HEX_DIGITS.match(token[2:]):
        return Subtype.HEX
    if token.startswith("0b") and _BINARY_DIGITS.match(token[2:]):
        return Subtype.BINARY
    if _REAL.match(token):
        return Subtype.REAL
    if is_url(token):
        return Subtype.URL
    if is_file_path(token):
        return Subtype.FILE_PATH
    return Subtype.NONE


def numeric_value(text: str, subtype: Subtype):
    """Converts the text of a numeric atom to a Python int or float."""
    match subtype:
        case Subtype.INTEGER:
            return int(text.replace("_", ""))
        case Subtype.HEX:
            return int(text[2:], 16)
        case Subtype.BINARY:
            return int(text[2:], 2)
        case Subtype.REAL:
            return float(text)
    raise ValueError(f"'{text}' is not a numeric atom")
