"""
Recursive-descent parser for XLA source text.

The parser scans characters once, opening one recursive frame per opening
delimiter. It never raises: any failure comes back as an `Error` node that
carries the offending source position.
"""
from typing import List, Tuple

from xla.xla_classifier import classify, is_tag
from xla.xla_datatypes import (
    Atom, Collection, Comment, Delimiter, Error, Kind, Node, Subtype, DELIMITERS
)

WHITESPACE = frozenset(" \t\n\r")

# The implicit top level behaves like a '#' collection: it may only hold
# bracketed constructs and comments, and a bare '!' ends the program.
TOP_LEVEL = Delimiter("#", "!", Kind.COLLECTION)


class Parser:
    """Turns source text into an Expression Node tree."""

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)

    def parse(self) -> Node:
        try:
            idx, root = self._build(TOP_LEVEL, 0, 0, top_level=True)
        except RecursionError:
            return self._error("Nesting is too deep to parse", 0)
        if root.is_error:
            return root
        if idx < self.length:
            return self._error(f"Unexpected characters after end of collection at position {idx}", idx)
        return root

    def _error(self, message: str, position: int) -> Error:
        return Error(message, position, phase="parse")

    def _atom(self, buffer: List[str], position: int) -> Atom:
        token = "".join(buffer)
        subtype = Subtype.TAG if is_tag(token) else classify(token)
        return Atom(token, subtype, position)

    def _build(self, delim: Delimiter, idx: int, start: int, top_level: bool = False) -> Tuple[int, Node]:
        """Parses one frame until `delim.close`.

        `idx` is the first character inside the frame and `start` the
        position of the opening delimiter. Returns the index just past the
        frame together with the finished node (or an Error).
        """
        text = self.text
        children: List[Node] = []
        buffer: List[str] = []
        in_collection = delim.kind is Kind.COLLECTION

        def flush(end: int):
            if buffer:
                children.append(self._atom(buffer, end - len(buffer)))
                buffer.clear()

        while idx < self.length:
            ch = text[idx]

            if ch == delim.close:
                flush(idx)
                return idx + 1, Collection(delim.kind, children, start)

            nested = DELIMITERS.get(ch)
            if nested is not None:
                flush(idx)
                idx, child = self._build(nested, idx + 1, idx)
                if child.is_error:
                    return idx, child
                children.append(child)
                continue

            if ch == ";":
                flush(idx)
                end = text.find("\n", idx)
                end = self.length if end == -1 else end + 1
                children.append(Comment(text[idx:end], idx))
                idx = end
                continue

            if ch in WHITESPACE:
                flush(idx)
            elif in_collection:
                return idx, self._error(
                    f"Error at position {idx}: All items inside a collection must start as a list type", idx
                )
            else:
                buffer.append(ch)
            idx += 1

        flush(idx)
        if top_level:
            return idx, Collection(delim.kind, children, start)
        return idx, self._error(
            f"Unclosed '{delim.open}' opened at position {start}: expected '{delim.close}' before end of input",
            idx,
        )


def parse(text: str) -> Node:
    """Parses `text` into the top-level collection, or an Error node."""
    return Parser(text).parse()

