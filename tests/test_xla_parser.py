import pytest

from xla.xla_parser import parse
from xla.xla_datatypes import Atom, Collection, Comment, Error, Kind, Subtype


def action(*children):
    return Collection(Kind.ACTION, children)


def test_empty_input_is_an_empty_program():
    root = parse("")
    assert root == Collection(Kind.COLLECTION, [])
    assert root.position == 0


def test_simple_action():
    root = parse("(def x 5)")
    assert root == Collection(Kind.COLLECTION, [
        action(Atom("def"), Atom("x"), Atom("5", Subtype.INTEGER)),
    ])


def test_positions_point_at_first_character():
    root = parse("(def x 5)")
    act = root[0]
    assert act.position == 0
    assert [c.position for c in act] == [1, 5, 7]


def test_all_five_delimiter_families():
    root = parse("(a) {b} [c] <d> #(e)!")
    assert [c.kind for c in root] == [Kind.ACTION, Kind.RUNTIME, Kind.RAW, Kind.PROMPT, Kind.COLLECTION]
    assert root[4] == Collection(Kind.COLLECTION, [action(Atom("e"))])


def test_nesting_inside_non_collection_frames():
    root = parse("(put [a (b) {c}] <x @p/q>)")
    put = root[0]
    raw = put[1]
    assert raw.kind is Kind.RAW
    assert raw[1] == action(Atom("b"))
    assert raw[2].kind is Kind.RUNTIME
    prompt = put[2]
    assert prompt == Collection(Kind.PROMPT, [Atom("x"), Atom("@p/q", Subtype.FILE_PATH)])


def test_atoms_are_classified():
    root = parse("(f 0x1F 0b11 2.5 https://a.example /tmp :tag plain)")
    subtypes = [c.subtype for c in root[0]]
    assert subtypes == [
        Subtype.NONE, Subtype.HEX, Subtype.BINARY, Subtype.REAL,
        Subtype.URL, Subtype.FILE_PATH, Subtype.TAG, Subtype.NONE,
    ]


def test_only_the_active_closer_closes_a_frame():
    root = parse("(a ] } ! b)")
    assert root[0] == action(Atom("a"), Atom("]"), Atom("}"), Atom("!"), Atom("b"))


def test_comment_runs_to_end_of_line():
    root = parse("; header\n(a ; note\n b)")
    assert root[0] == Comment("; header\n")
    assert root[1] == action(Atom("a"), Comment("; note\n"), Atom("b"))


def test_comment_at_end_of_input():
    root = parse("(a) ; trailing")
    assert root[1] == Comment("; trailing")


def test_spec_program_with_explicit_terminator():
    root = parse("#! (def x 5) (put x) !")
    assert not root.is_error
    assert root[0] == Collection(Kind.COLLECTION, [])
    assert root[1] == action(Atom("def"), Atom("x"), Atom("5", Subtype.INTEGER))
    assert root[2] == action(Atom("put"), Atom("x"))


def test_top_level_positions_are_non_decreasing():
    root = parse("(a) [b]\n{c} <d> #(e)!  ; done\n(f)")
    positions = [c.position for c in root]
    assert positions == sorted(positions)


# --- Errors ---

def test_unclosed_construct_reports_end_of_input():
    src = "#! (fn (:a :b) :error !"
    err = parse(src)
    assert isinstance(err, Error)
    assert err.phase == "parse"
    assert err.position == len(src)
    assert "Unclosed '('" in err.message
    assert "position 3" in err.message


def test_unclosed_nested_error_propagates():
    err = parse("((a)")
    assert err.is_error
    assert err.position == 4


@pytest.mark.parametrize("src, position", [
    ("hello", 0),
    ("(a) b", 4),
    ("#a!", 1),
    ("(x #(y) z!)", 8),
])
def test_bare_atoms_in_collections_are_rejected(src, position):
    err = parse(src)
    assert err.is_error
    assert err.position == position
    assert "All items inside a collection must start as a list type" in err.message


def test_trailing_content_after_terminator():
    err = parse("(a) ! (b)")
    assert err.is_error
    assert err.position == 5
    assert "Unexpected characters after end of collection" in err.message


def test_terminator_at_end_is_fine():
    root = parse("(a) !")
    assert root == Collection(Kind.COLLECTION, [action(Atom("a"))])


def test_deep_nesting_does_not_raise():
    depth = 5000
    err = parse("(" * depth + ")" * depth)
    assert err.is_error
    assert "too deep" in err.message
