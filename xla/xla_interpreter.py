"""
The core XLA interpreter: a tree-walking Evaluator.

Evaluation never unwinds through Python exceptions. Every failure becomes an
`Error` node that callers check for and hand back immediately; `Yield` nodes
travel the same way until the nearest call or loop consumes them.
"""
import os
import sys
from typing import Any, Callable, Dict, List, Optional

from xla.xla_datatypes import (
    Atom, Collection, Comment, Error, Kind, Node, Procedure, Closure, NativeProcedure,
    Environment, Subtype, is_yield
)
from xla.xla_printer import Printer
from xla.xla_resources import ResourceError, ResourceTable

# Host handler for runtime `{...}` and prompt `<...>` nodes.
KindHandler = Callable[..., Node]

DEFAULT_MAX_DEPTH = 128


class Evaluator:
    """The XLA execution engine."""

    def __init__(self, resources: Optional[ResourceTable] = None, output: Any = None,
                 handlers: Optional[Dict[Kind, KindHandler]] = None,
                 loop_limit: Optional[int] = None, max_depth: int = DEFAULT_MAX_DEPTH):
        self.resources = resources
        # Where `put` writes; resolved on each write so a swapped sys.stdout is honored.
        self.output = output
        self.handlers: Dict[Kind, KindHandler] = dict(handlers or {})
        # Optional bound on `do` iterations. None means loop until yield or error.
        self.loop_limit = loop_limit
        self.max_depth = max_depth
        self.depth = 0
        self.side_effects: List[Dict[str, Any]] = []
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node: Optional[Node] = None

    # --- Diagnostics ---

    def _dbg(self, *parts):
        if os.environ.get("XLA_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _push_frame(self, name, proc, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'proc': proc,
            'args': args,
            'call_site': call_site_node,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def call_site(self) -> Optional[Node]:
        """The action node of the innermost active call, if any."""
        if self.call_stack:
            return self.call_stack[-1]['call_site']
        return self.current_node

    def error(self, message: str, offender: Optional[Node] = None) -> Error:
        """Builds a runtime Error positioned at `offender` (default: the current call site)."""
        if offender is None:
            offender = self.call_site()
        position = offender.position if offender is not None else 0
        trace = [frame['name'] for frame in self.call_stack]
        self._dbg("error", message, "at", position, "stack", trace)
        return Error(message, position, phase="runtime", stacktrace=trace)

    # --- Host integration ---

    def register_handler(self, kind: Kind, handler: KindHandler):
        if kind not in (Kind.RUNTIME, Kind.PROMPT):
            raise ValueError(f"handlers can only be registered for runtime and prompt nodes, not {kind.value}")
        self.handlers[kind] = handler

    def write_output(self, text: str):
        """Writes one line of program output and records it as a stdout side effect."""
        sink = self.output if self.output is not None else sys.stdout
        sink.write(text + "\n")
        if hasattr(sink, "flush"):
            sink.flush()
        self.side_effects.append({'topics': ['stdout'], 'message': text})

    # --- Evaluation ---

    def eval(self, node: Node, env: Environment) -> Node:
        """Public entry point for evaluation. Always returns a node."""
        if self.depth >= self.max_depth:
            return self.error(f"maximum evaluation depth of {self.max_depth} exceeded", node)
        self.depth += 1
        try:
            return self._eval(node, env)
        except RecursionError:
            return self.error("maximum recursion depth exceeded", node)
        finally:
            self.depth -= 1

    def _eval(self, node: Node, env: Environment) -> Node:
        """Recursive dispatcher for evaluating any node."""
        self.current_node = node
        if not isinstance(node, Node):
            return Error(f"Unknown element type: {type(node).__name__}", 0)

        match node.kind:
            case Kind.ATOM:
                return self._eval_atom(node, env)

            case Kind.COMMENT:
                return Comment("", node.position)

            case Kind.COLLECTION:
                results = []
                for child in node.children:
                    result = self.eval(child, env)
                    if result.is_error:
                        return result
                    results.append(result)
                return Collection(Kind.COLLECTION, results, node.position, node.tags)

            case Kind.ACTION:
                return self._eval_action(node, env)

            case Kind.RAW:
                return node

            case Kind.RUNTIME | Kind.PROMPT:
                return self._eval_extension(node, env)

            case Kind.ERROR | Kind.PROCEDURE | Kind.YIELD:
                return node

        return self.error(f"Unknown element type: {node.kind}", node)

    def _eval_extension(self, node: Collection, env: Environment) -> Node:
        label = "Runtime element" if node.kind is Kind.RUNTIME else "Prompt"
        handler = self.handlers.get(node.kind)
        if handler is None:
            return self.error(f"{label} handling not implemented", node)
        try:
            result = handler(node, env=env)
        except RecursionError:
            raise
        except ResourceError as e:
            return self.error(f"ResourceError: {e}", node)
        except Exception as e:
            return self.error(f"{type(e).__name__} in {label.lower()} handler: {e}", node)
        if not isinstance(result, Node):
            return self.error(f"{label.lower()} handler returned a non-node value: {result!r}", node)
        return result

    def _eval_atom(self, node: Atom, env: Environment) -> Node:
        if node.is_tag:
            return node
        if node.text.startswith("@") and len(node.text) > 1:
            return self._resolve_resource(node)
        value = env.lookup(node.text)
        if value is None:
            # Unbound atoms are self-evaluating literals
            return node
        return value

    def _resolve_resource(self, node: Atom) -> Node:
        if self.resources is None:
            return self.error(f"cannot resolve {node.text}: no resource table configured", node)
        try:
            resource = self.resources.resolve(node.text)
        except ResourceError as e:
            return self.error(f"failed to resolve resource {node.text}: {e}", node)
        self._dbg("resource", node.text, "->", resource.file_path)
        return Atom(resource.file_path, Subtype.FILE_PATH, node.position, ("resource", resource.kind))

    def _eval_action(self, node: Collection, env: Environment) -> Node:
        terms = [c for c in node.children if c.kind is not Kind.COMMENT]
        if not terms:
            return self.error("Invalid action element: an action needs a procedure to call", node)
        head = self.eval(terms[0], env)
        if head.is_signal:
            return head
        if not isinstance(head, Procedure):
            return self.error(f"Expected a procedure, got '{Printer().pformat(head)}'", terms[0])
        return self.call(head, terms[1:], env, node)

    def call(self, proc: Procedure, args: List[Node], env: Environment, call_node: Optional[Node] = None) -> Node:
        """Invokes `proc` with unevaluated `args` on behalf of `call_node`."""
        self._push_frame(proc.name, proc, args, call_node)
        try:
            if isinstance(proc, Closure):
                return self._call_closure(proc, args, env)
            return self._call_native(proc, args, env)
        finally:
            self._pop_frame()

    def _call_native(self, proc: NativeProcedure, args: List[Node], env: Environment) -> Node:
        try:
            result = proc.fn(args, env=env)
        except RecursionError:
            raise
        except Exception as e:
            return self.error(f"{type(e).__name__} in ({proc.name}): {e}")
        if not isinstance(result, Node):
            return self.error(f"procedure '{proc.name}' returned a non-node value: {result!r}")
        return result

    def _call_closure(self, closure: Closure, args: List[Node], env: Environment) -> Node:
        if len(args) != closure.arity:
            return self.error(f"procedure '{closure.name}' expects {closure.arity} arguments, got {len(args)}")

        values = []
        for arg in args:
            value = self.eval(arg, env)
            if value.is_signal:
                return value
            values.append(value)

        local = Environment(parent=closure.env)
        for name, value in zip(closure.params, values):
            local.define(name, value)

        result = None
        for expr in closure.body:
            result = self.eval(expr, local)
            if result.is_error:
                return result
            if is_yield(result):
                return result.value
        return result
