"""
A pretty-printer for XLA nodes.
"""
from xla.xla_datatypes import (
    Atom, Collection, Comment, Error, NativeProcedure, Closure, Yield,
    DELIMITERS_BY_KIND
)


class Printer:
    """Formats XLA nodes back into source text."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format a node."""
        handler = self._get_handler(obj)
        return self._tag_prefix(obj) + handler(obj, level)

    def pformat_program(self, root):
        """Formats a top-level collection without its implicit delimiters."""
        if not isinstance(root, Collection):
            return self.pformat(root)
        return self._join(root.children, 0)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            Atom: self._pformat_atom,
            Collection: self._pformat_collection,
            Comment: self._pformat_comment,
            Error: self._pformat_error,
            NativeProcedure: self._pformat_native,
            Closure: self._pformat_closure,
            Yield: self._pformat_yield,
        }

    def _tag_prefix(self, obj):
        tags = getattr(obj, "tags", ())
        if not tags:
            return ""
        return "".join(f":{t} " for t in tags)

    def _join(self, nodes, level):
        out = []
        for node in nodes:
            text = self.pformat(node, level)
            # A comment already ends its own line
            if out and not out[-1].endswith("\n"):
                out.append(" ")
            out.append(text)
        return "".join(out)

    def _pformat_atom(self, obj, level):
        return obj.text

    def _pformat_collection(self, obj, level):
        delim = DELIMITERS_BY_KIND[obj.kind]
        return f"{delim.open}{self._join(obj.children, level + 1)}{delim.close}"

    def _pformat_comment(self, obj, level):
        return obj.text

    def _pformat_error(self, obj, level):
        return f"<error: {obj.message}>"

    def _pformat_native(self, obj, level):
        return f"<procedure {obj.name}>"

    def _pformat_closure(self, obj, level):
        params = " ".join(obj.params)
        body = self._join(obj.body, level + 1)
        return f"(fn [{params}] {body})"

    def _pformat_yield(self, obj, level):
        return f"(yield {self.pformat(obj.value, level)})"
