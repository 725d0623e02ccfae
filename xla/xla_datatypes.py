"""
Defines the core data types for the XLA language runtime.

Every stage (parser, collapse pass, evaluator) works on the same tree of
Expression Nodes. Each node variant is its own class; the `kind` attribute
mirrors the variant so callers can dispatch with a simple match.
"""

from abc import ABC
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


# =================================================================
# Kinds and subtypes
# =================================================================

class Kind(Enum):
    ATOM = "atom"
    ACTION = "action"
    RUNTIME = "runtime"
    RAW = "raw"
    PROMPT = "prompt"
    COLLECTION = "collection"
    COMMENT = "comment"
    # Introduced by the evaluator, never produced by the parser.
    ERROR = "error"
    PROCEDURE = "procedure"
    YIELD = "yield"


class Subtype(Enum):
    INTEGER = "integer"
    HEX = "hex"
    BINARY = "binary"
    REAL = "real"
    URL = "url"
    FILE_PATH = "file_path"
    TAG = "tag"
    NONE = "none"


COLLECTION_KINDS = frozenset({Kind.ACTION, Kind.RUNTIME, Kind.RAW, Kind.PROMPT, Kind.COLLECTION})

NUMERIC_SUBTYPES = frozenset({Subtype.INTEGER, Subtype.HEX, Subtype.BINARY, Subtype.REAL})


class Delimiter:
    """An opening/closing character pair and the collection kind it produces."""
    def __init__(self, open: str, close: str, kind: Kind):
        self.open = open
        self.close = close
        self.kind = kind

    def __repr__(self) -> str:
        return f"Delimiter({self.open!r}, {self.close!r}, {self.kind.value})"


# Fixed at interpreter build time; not user configurable.
DELIMITERS: Dict[str, Delimiter] = {
    "(": Delimiter("(", ")", Kind.ACTION),
    "{": Delimiter("{", "}", Kind.RUNTIME),
    "[": Delimiter("[", "]", Kind.RAW),
    "<": Delimiter("<", ">", Kind.PROMPT),
    "#": Delimiter("#", "!", Kind.COLLECTION),
}

DELIMITERS_BY_KIND: Dict[Kind, Delimiter] = {d.kind: d for d in DELIMITERS.values()}


# =================================================================
# Expression nodes
# =================================================================

class Node(ABC):
    """Base class for every Expression Node.

    `position` is the source offset the node came from and is only used for
    diagnostics, so it takes no part in equality. `tags` is the ordered tuple
    of names attached by the collapse pass.
    """
    kind: Kind

    def __init__(self, position: int = 0, tags: Tuple[str, ...] = ()):
        self.position = position
        self.tags = tuple(tags)

    @property
    def payload(self) -> Any:
        raise NotImplementedError

    def with_tags(self, tags) -> 'Node':
        """Returns a copy of this node with `tags` appended to its own."""
        raise NotImplementedError

    @property
    def is_error(self) -> bool:
        return self.kind is Kind.ERROR

    @property
    def is_signal(self) -> bool:
        """True for results that must stop evaluation and propagate outward."""
        return self.kind is Kind.ERROR or self.kind is Kind.YIELD

    def _tags_repr(self) -> str:
        return f" tags={list(self.tags)!r}" if self.tags else ""


class Atom(Node):
    """A run of non-delimiter, non-whitespace characters with its subtype."""
    kind = Kind.ATOM

    def __init__(self, text: str, subtype: Subtype = Subtype.NONE, position: int = 0, tags: Tuple[str, ...] = ()):
        super().__init__(position, tags)
        self.text = text
        self.subtype = subtype

    @property
    def payload(self) -> str:
        return self.text

    @property
    def is_tag(self) -> bool:
        return self.subtype is Subtype.TAG

    def with_tags(self, tags) -> 'Atom':
        return Atom(self.text, self.subtype, self.position, self.tags + tuple(tags))

    def __repr__(self) -> str:
        return f"Atom<{self.text!r} {self.subtype.value} @{self.position}{self._tags_repr()}>"

    def __eq__(self, other):
        return (
            isinstance(other, Atom)
            and self.text == other.text
            and self.subtype == other.subtype
            and self.tags == other.tags
        )

    def __hash__(self):
        return hash((Kind.ATOM, self.text, self.subtype, self.tags))


class Collection(Node):
    """Any node whose payload is an ordered sequence of children.

    The kind (action, runtime, raw, prompt or collection) records which
    delimiter pair produced it.
    """
    def __init__(self, kind: Kind, children, position: int = 0, tags: Tuple[str, ...] = ()):
        if kind not in COLLECTION_KINDS:
            raise ValueError(f"{kind} is not a collection kind")
        super().__init__(position, tags)
        self.kind = kind
        self.children: Tuple[Node, ...] = tuple(children)

    @property
    def payload(self) -> Tuple[Node, ...]:
        return self.children

    def __len__(self) -> int:
        return len(self.children)

    def __iter__(self):
        return iter(self.children)

    def __getitem__(self, index):
        return self.children[index]

    def with_children(self, children) -> 'Collection':
        return Collection(self.kind, children, self.position, self.tags)

    def with_tags(self, tags) -> 'Collection':
        return Collection(self.kind, self.children, self.position, self.tags + tuple(tags))

    def __repr__(self) -> str:
        return f"{self.kind.value.capitalize()}({list(self.children)!r} @{self.position}{self._tags_repr()})"

    def __eq__(self, other):
        return (
            isinstance(other, Collection)
            and self.kind == other.kind
            and self.children == other.children
            and self.tags == other.tags
        )

    def __hash__(self):
        return hash((self.kind, self.children, self.tags))


class Comment(Node):
    """A `;` line comment, kept in the tree but never evaluated for effect."""
    kind = Kind.COMMENT

    def __init__(self, text: str, position: int = 0, tags: Tuple[str, ...] = ()):
        super().__init__(position, tags)
        self.text = text

    @property
    def payload(self) -> str:
        return self.text

    def with_tags(self, tags) -> 'Comment':
        return Comment(self.text, self.position, self.tags + tuple(tags))

    def __repr__(self) -> str:
        return f"Comment<{self.text!r} @{self.position}>"

    def __eq__(self, other):
        return isinstance(other, Comment) and self.text == other.text and self.tags == other.tags

    def __hash__(self):
        return hash((Kind.COMMENT, self.text, self.tags))


class Error(Node):
    """An error value. Errors are data: they propagate, they are never raised.

    `phase` names the stage that produced it ('parse', 'collapse' or
    'runtime'); `stacktrace` holds the procedure names active when a runtime
    error was created.
    """
    kind = Kind.ERROR

    def __init__(self, message: str, position: int = 0, phase: str = "runtime",
                 stacktrace: Optional[List[str]] = None, tags: Tuple[str, ...] = ()):
        super().__init__(position, tags)
        self.message = message
        self.phase = phase
        self.stacktrace = list(stacktrace or [])

    @property
    def payload(self) -> str:
        return self.message

    def with_tags(self, tags) -> 'Error':
        return Error(self.message, self.position, self.phase, self.stacktrace, self.tags + tuple(tags))

    def describe(self) -> str:
        return f"{self.phase.capitalize()} error at position {self.position}: {self.message}"

    def __str__(self) -> str:
        return self.describe()

    def __repr__(self) -> str:
        return f"Error<{self.message!r} @{self.position} {self.phase}>"

    def __eq__(self, other):
        return (
            isinstance(other, Error)
            and self.message == other.message
            and self.phase == other.phase
            and self.tags == other.tags
        )

    def __hash__(self):
        return hash((Kind.ERROR, self.message, self.phase, self.tags))


class Procedure(Node):
    """Abstract base class for everything callable from an action."""
    kind = Kind.PROCEDURE

    def __init__(self, name: str, position: int = 0, tags: Tuple[str, ...] = ()):
        super().__init__(position, tags)
        self.name = name

    @property
    def payload(self) -> 'Procedure':
        return self


# Native procedures follow the fexpr contract: unevaluated args plus the
# caller's environment in, a result node out.
NativeFn = Callable[..., Node]


class NativeProcedure(Procedure):
    """A procedure implemented in Python (special forms and host builtins)."""
    def __init__(self, name: str, fn: NativeFn, position: int = 0, tags: Tuple[str, ...] = ()):
        super().__init__(name, position, tags)
        self.fn = fn

    def with_tags(self, tags) -> 'NativeProcedure':
        return NativeProcedure(self.name, self.fn, self.position, self.tags + tuple(tags))

    def __repr__(self) -> str:
        return f"<NativeProcedure {self.name}>"

    def __eq__(self, other):
        return isinstance(other, NativeProcedure) and self.name == other.name and self.fn == other.fn

    def __hash__(self):
        return hash((Kind.PROCEDURE, self.name))


class Closure(Procedure):
    """A procedure defined with `fn`.

    Bundles the parameter names, the body expressions and the environment
    active where `fn` was evaluated.
    """
    def __init__(self, params: List[str], body: List[Node], env: 'Environment',
                 name: str = "lambda", position: int = 0, tags: Tuple[str, ...] = ()):
        super().__init__(name, position, tags)
        self.params = list(params)
        self.body = list(body)
        self.env = env

    @property
    def arity(self) -> int:
        return len(self.params)

    def with_tags(self, tags) -> 'Closure':
        return Closure(self.params, self.body, self.env, self.name, self.position, self.tags + tuple(tags))

    def __repr__(self) -> str:
        from xla.xla_printer import Printer
        return Printer().pformat(self)

    def __eq__(self, other):
        if not isinstance(other, Closure):
            return NotImplemented
        # NOTE: the captured environment is not compared.
        return self.params == other.params and self.body == other.body

    def __hash__(self):
        return hash((Kind.PROCEDURE, tuple(self.params)))


class Yield(Node):
    """Wraps a value to signal early exit from the nearest call or loop."""
    kind = Kind.YIELD

    def __init__(self, value: Node, position: int = 0, tags: Tuple[str, ...] = ()):
        super().__init__(position, tags)
        self.value = value

    @property
    def payload(self) -> Node:
        return self.value

    def with_tags(self, tags) -> 'Yield':
        return Yield(self.value, self.position, self.tags + tuple(tags))

    def __repr__(self) -> str:
        return f"Yield({self.value!r})"

    def __eq__(self, other):
        return isinstance(other, Yield) and self.value == other.value

    def __hash__(self):
        return hash((Kind.YIELD, self.value))


def is_yield(x) -> bool:
    return isinstance(x, Yield)


def unwrap_yield(x):
    return x.value if is_yield(x) else x


def integer(value: int, position: int = 0) -> Atom:
    """Builds an integer-subtype atom."""
    return Atom(str(value), Subtype.INTEGER, position)


# =================================================================
# Environment
# =================================================================

class Environment:
    """A lexical scope: name -> node bindings plus an optional parent.

    Block scopes (loop iterations, calls) are created with `push()` and simply
    dropped on exit. A closure keeps its defining environment alive by holding
    a reference to it.
    """
    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Node] = {}
        self.parent = parent

    def define(self, name: str, value: Node) -> bool:
        """Binds `name` in this scope. Returns False if it is already bound here."""
        if name in self.bindings:
            return False
        self.bindings[name] = value
        return True

    def lookup(self, name: str, search_parent: bool = True) -> Optional[Node]:
        if name in self.bindings:
            return self.bindings[name]
        if search_parent and self.parent is not None:
            return self.parent.lookup(name, search_parent)
        return None

    def find_owner(self, name: str) -> Optional['Environment']:
        """Finds the closest Environment in the chain that binds `name`."""
        if name in self.bindings:
            return self
        if self.parent is not None:
            return self.parent.find_owner(name)
        return None

    def rebind(self, name: str, value: Node) -> bool:
        """Updates the closest enclosing binding of `name`. False if unbound everywhere."""
        owner = self.find_owner(name)
        if owner is None:
            return False
        owner.bindings[name] = value
        return True

    def push(self) -> 'Environment':
        return Environment(parent=self)

    def pop(self) -> 'Environment':
        return self.parent if self.parent is not None else self

    def __getitem__(self, name: str) -> Node:
        owner = self.find_owner(name)
        if owner is None:
            raise KeyError(f"'{name}'")
        return owner.bindings[name]

    def __contains__(self, name: Any) -> bool:
        if isinstance(name, str):
            return self.find_owner(name) is not None
        return False

    def get(self, name: Any, default: Any = None) -> Any:
        if not isinstance(name, str):
            return default
        value = self.lookup(name)
        return default if value is None else value

    def keys(self):
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    @property
    def root(self) -> 'Environment':
        env = self
        while env.parent is not None:
            env = env.parent
        return env

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Environment bindings=[{keys}]{parent_id}>"
