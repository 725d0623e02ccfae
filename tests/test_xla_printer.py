import pytest

from xla.xla_collapse import collapse
from xla.xla_datatypes import (
    Atom, Collection, Comment, Environment, Error, Kind, NativeProcedure, Closure, Yield, integer
)
from xla.xla_parser import parse
from xla.xla_printer import Printer


@pytest.fixture
def printer():
    return Printer()


@pytest.mark.parametrize("src", [
    "(def x 5) (put x)",
    "#(a)[b c]!",
    "<p @x/y> {r (s)}",
    "(a ; note\n b)",
    "; header\n(f [a [b [c]]] 0x1F 2.5 https://example.com)",
    "(:tag x)",
])
def test_round_trip(printer, src):
    tree = parse(src)
    text = printer.pformat_program(tree)
    assert parse(text) == tree


def test_round_trip_after_collapse(printer):
    tree = collapse(parse("(f :a :b x [:c])"))
    assert collapse(parse(printer.pformat_program(tree))) == tree


def test_atoms_and_collections(printer):
    assert printer.pformat(Atom("hello")) == "hello"
    node = Collection(Kind.ACTION, [Atom("f"), Collection(Kind.RAW, [Atom("a"), Atom("b")])])
    assert printer.pformat(node) == "(f [a b])"
    assert printer.pformat(Collection(Kind.COLLECTION, [])) == "#!"
    assert printer.pformat(Collection(Kind.PROMPT, [Atom("x")])) == "<x>"
    assert printer.pformat(Collection(Kind.RUNTIME, [])) == "{}"


def test_tags_render_as_markers(printer):
    assert printer.pformat(Atom("x", tags=("a", "b"))) == ":a :b x"


def test_comment_ends_its_line(printer):
    node = Collection(Kind.ACTION, [Atom("a"), Comment("; c\n"), Atom("b")])
    assert printer.pformat(node) == "(a ; c\nb)"


def test_runtime_values(printer):
    assert printer.pformat(Error("bad")) == "<error: bad>"
    assert printer.pformat(NativeProcedure("put", lambda args, *, env: integer(0))) == "<procedure put>"
    closure = Closure(["a", "b"], [Collection(Kind.ACTION, [Atom("+"), Atom("a"), Atom("b")])], Environment())
    assert printer.pformat(closure) == "(fn [a b] (+ a b))"
    assert printer.pformat(Yield(integer(3))) == "(yield 3)"


def test_unknown_objects_fall_back_to_repr(printer):
    assert printer.pformat(42) == "42"
