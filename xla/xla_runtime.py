# xla_runtime.py

import inspect
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

import pystache
import yaml

from xla.xla_classifier import classify, numeric_value
from xla.xla_collapse import collapse
from xla.xla_datatypes import (
    Atom, Collection, Closure, Environment, Error, Kind, NativeProcedure, Node, Procedure,
    Subtype, Yield, NUMERIC_SUBTYPES, integer, is_yield, unwrap_yield
)
from xla.xla_interpreter import Evaluator
from xla.xla_parser import parse
from xla.xla_printer import Printer
from xla.xla_resources import ResourceError, ResourceTable

# ===================================================================
# 1. Decorators & Host Base Class
# ===================================================================


def xla_builtin(*names):
    """Marks a StdLib method as a native procedure bound under `names`."""
    def decorator(func):
        func._xla_names = names
        return func
    return decorator


def xla_api_method(func):
    """A decorator to explicitly mark host methods as callable from XLA scripts."""
    func._is_xla_api = True
    return func


class XLAHost:
    """Base class for Python objects exposed to the XLA interpreter.

    Methods marked with @xla_api_method are bound into the root environment
    under their kebab-case names. They receive evaluated arguments as plain
    Python values (numbers for numeric atoms, text for other atoms, nodes for
    everything else) and may return a node or a plain Python value.
    """

    def api_methods(self) -> Dict[str, Callable]:
        methods = {}
        for name, member in inspect.getmembers(self):
            if not callable(member) or name.startswith("_"):
                continue
            # Decorator may mark the bound method or the underlying function
            is_api = getattr(member, "_is_xla_api", False)
            if not is_api:
                func = getattr(member, "__func__", None)
                is_api = getattr(func, "_is_xla_api", False) if func is not None else False
            if is_api:
                methods[name.replace("_", "-")] = member
        return methods


# ===================================================================
# 2. Value conversion
# ===================================================================


def text_atom(text: str, position: int = 0) -> Atom:
    """Builds an atom from computed text, classifying it when it is a single token."""
    if text and not any(ch.isspace() for ch in text):
        return Atom(text, classify(text), position)
    return Atom(text, Subtype.NONE, position)


def to_python(node: Node) -> Any:
    if isinstance(node, Atom):
        if node.subtype in NUMERIC_SUBTYPES:
            return numeric_value(node.text, node.subtype)
        return node.text
    return node


def from_python(value: Any, position: int = 0) -> Node:
    match value:
        case Node():
            return value
        case None:
            return Atom("", Subtype.NONE, position)
        case bool():
            return integer(1 if value else 0, position)
        case int():
            return integer(value, position)
        case float():
            return Atom(repr(value), Subtype.REAL, position)
        case str():
            return text_atom(value, position)
        case list() | tuple():
            return Collection(Kind.COLLECTION, [from_python(v, position) for v in value], position)
    raise TypeError(f"cannot convert {type(value).__name__} to an XLA value")


def final_value(node: Node) -> Node:
    """The value of the last statement: the last non-comment leaf of an evaluated program."""
    node = unwrap_yield(node)
    while isinstance(node, Collection) and node.kind is Kind.COLLECTION:
        items = [c for c in node.children if c.kind is not Kind.COMMENT]
        if not items:
            break
        node = unwrap_yield(items[-1])
    return node


# ===================================================================
# 3. Standard Library
# ===================================================================


class StdLib:
    """Contains Python implementations for all XLA special forms and builtins.

    Every native receives its arguments unevaluated together with the caller's
    environment, and decides itself what to evaluate.
    """
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator
        self.printer = Printer()

    def bind(self, env: Environment):
        """Defines every builtin in `env` under all of its names."""
        for _, member in inspect.getmembers(self):
            names = getattr(member, "_xla_names", None)
            if not names or not callable(member):
                continue
            for name in names:
                env.define(name, NativeProcedure(name, member))

    # --- Helpers ---

    def _form(self) -> str:
        stack = self.evaluator.call_stack
        return stack[-1]['name'] if stack else "<call>"

    def _position(self) -> int:
        site = self.evaluator.call_site()
        return site.position if site is not None else 0

    def _error(self, message: str, offender: Optional[Node] = None) -> Error:
        return self.evaluator.error(message, offender)

    def _eval_args(self, args: List[Node], env: Environment):
        """Evaluates args left to right. Returns the values, or the first Error/Yield."""
        values = []
        for arg in args:
            value = self.evaluator.eval(arg, env)
            if value.is_signal:
                return value
            values.append(value)
        return values

    def _name_arg(self, node: Node):
        if not isinstance(node, Atom) or node.is_tag:
            return None
        return node.text

    # --- Binding ---

    @xla_builtin("def", "let")
    def _def(self, args: list, *, env: Environment):
        form = self._form()
        self.evaluator._dbg(f"{form}()", "argc", len(args))
        if len(args) != 2:
            return self._error(f"{form} expects a name and a value, got {len(args)} arguments")
        name_node, expr = args
        name = self._name_arg(name_node)
        if name is None:
            return self._error(f"{form} expects an atom to name the binding", name_node)
        if env.lookup(name, search_parent=False) is not None:
            return self._error(f"'{name}' is already defined in this scope", name_node)

        value = self.evaluator.eval(expr, env)
        if value.is_signal:
            return value
        if isinstance(value, Closure) and value.name == "lambda":
            value = Closure(value.params, value.body, value.env, name, value.position, value.tags)
        if not env.define(name, value):
            return self._error(f"'{name}' is already defined in this scope", name_node)
        return value

    @xla_builtin("set")
    def _set(self, args: list, *, env: Environment):
        self.evaluator._dbg("set()", "argc", len(args))
        if len(args) != 2:
            return self._error(f"set expects a name and a value, got {len(args)} arguments")
        name_node, expr = args
        name = self._name_arg(name_node)
        if name is None:
            return self._error("set expects an atom to name the binding", name_node)
        if env.find_owner(name) is None:
            return self._error(f"cannot set '{name}': it is not defined", name_node)

        value = self.evaluator.eval(expr, env)
        if value.is_signal:
            return value
        env.rebind(name, value)
        return value

    # --- Procedures and control flow ---

    @xla_builtin("fn")
    def _fn(self, args: list, *, env: Environment):
        self.evaluator._dbg("fn()", "argc", len(args))
        if len(args) < 2:
            return self._error("fn expects a parameter list and at least one body expression")
        params_node, body = args[0], args[1:]
        if params_node.kind is not Kind.RAW:
            return self._error("fn expects its parameters in a [...] list", params_node)

        params: List[str] = []
        for param in params_node.children:
            if param.kind is Kind.COMMENT:
                continue
            name = self._name_arg(param)
            if name is None:
                return self._error("fn parameters must be atoms", param)
            if name in params:
                return self._error(f"duplicate parameter '{name}'", param)
            params.append(name)
        return Closure(params, body, env, position=self._position())

    @xla_builtin("yield")
    def _yield(self, args: list, *, env: Environment):
        self.evaluator._dbg("yield()", "argc", len(args))
        if len(args) != 1:
            return self._error(f"yield expects exactly one expression, got {len(args)}")
        value = self.evaluator.eval(args[0], env)
        if value.is_signal:
            return value
        return Yield(value, self._position())

    @xla_builtin("do")
    def _do(self, args: list, *, env: Environment):
        self.evaluator._dbg("do()", "argc", len(args))
        if not args:
            return self._error("do expects at least one action")
        for arg in args:
            if arg.kind is not Kind.ACTION:
                return self._error("do only accepts actions", arg)

        limit = self.evaluator.loop_limit
        iterations = 0
        while True:
            if limit is not None and iterations >= limit:
                return self._error(f"do exceeded the loop limit of {limit} iterations")
            iterations += 1
            scope = env.push()
            for action in args:
                result = self.evaluator.eval(action, scope)
                if result.is_error:
                    return result
                if is_yield(result):
                    self.evaluator._dbg("do()", "yielded after", iterations, "iterations")
                    return result.value

    @xla_builtin("if")
    def _if(self, args: list, *, env: Environment):
        self.evaluator._dbg("if()", "argc", len(args), "arg_kinds", [a.kind.value for a in args])
        if len(args) not in (2, 3):
            return self._error(f"if expects a condition, a branch and an optional else branch, got {len(args)} arguments")
        cond, then_branch = args[0], args[1]
        else_branch = args[2] if len(args) == 3 else None
        for branch in (then_branch, else_branch):
            if branch is not None and branch.kind not in (Kind.ACTION, Kind.RUNTIME):
                return self._error("if branches must be actions or runtime blocks", branch)

        value = self.evaluator.eval(cond, env)
        if value.is_signal:
            return value
        if not isinstance(value, Atom) or value.subtype is not Subtype.INTEGER:
            return self._error(f"if condition must evaluate to an integer, got '{self.printer.pformat(value)}'", cond)

        if numeric_value(value.text, value.subtype) != 0:
            return self.evaluator.eval(then_branch, env)
        if else_branch is None:
            return integer(0, self._position())
        return self.evaluator.eval(else_branch, env)

    # --- Text and output ---

    @xla_builtin("ref")
    def _ref(self, args: list, *, env: Environment):
        self.evaluator._dbg("ref()", "argc", len(args))
        if not args:
            return self._error("ref expects at least one expression")
        values = self._eval_args(args, env)
        if isinstance(values, Node):
            return values
        text = " ".join(self.printer.pformat(v) for v in values)
        return text_atom(text, self._position())

    def _put_fragments(self, value: Node, out: List[str]):
        if isinstance(value, Atom):
            out.append(value.text)
        elif isinstance(value, Collection):
            for child in value.children:
                if child.kind is not Kind.COMMENT:
                    self._put_fragments(child, out)
        else:
            out.append(self.printer.pformat(value))

    @xla_builtin("put")
    def _put(self, args: list, *, env: Environment):
        self.evaluator._dbg("put()", "argc", len(args))
        values = self._eval_args(args, env)
        if isinstance(values, Node):
            return values
        fragments: List[str] = []
        for value in values:
            self._put_fragments(value, fragments)
        if not fragments:
            return Atom("", Subtype.NONE, self._position())
        joined = "\n".join(fragments)
        self.evaluator.write_output(joined)
        return text_atom(joined, self._position())

    # --- Math and Logic ---

    def _numbers(self, args: list, env: Environment, minimum: int = 1):
        form = self._form()
        if len(args) < minimum:
            return self._error(f"{form} expects at least {minimum} arguments, got {len(args)}")
        values = self._eval_args(args, env)
        if isinstance(values, Node):
            return values
        numbers = []
        for arg, value in zip(args, values):
            if not isinstance(value, Atom) or value.subtype not in NUMERIC_SUBTYPES:
                return self._error(f"{form} expects numeric arguments, got '{self.printer.pformat(value)}'", arg)
            numbers.append(numeric_value(value.text, value.subtype))
        return numbers

    def _number(self, value) -> Atom:
        if isinstance(value, float):
            return Atom(repr(value), Subtype.REAL, self._position())
        return integer(value, self._position())

    @xla_builtin("add", "+")
    def _add(self, args: list, *, env: Environment):
        numbers = self._numbers(args, env)
        if isinstance(numbers, Node):
            return numbers
        return self._number(sum(numbers))

    @xla_builtin("sub", "-")
    def _sub(self, args: list, *, env: Environment):
        numbers = self._numbers(args, env)
        if isinstance(numbers, Node):
            return numbers
        if len(numbers) == 1:
            return self._number(-numbers[0])
        result = numbers[0]
        for n in numbers[1:]:
            result -= n
        return self._number(result)

    @xla_builtin("mul", "*")
    def _mul(self, args: list, *, env: Environment):
        numbers = self._numbers(args, env)
        if isinstance(numbers, Node):
            return numbers
        result = 1
        for n in numbers:
            result *= n
        return self._number(result)

    @xla_builtin("div", "/")
    def _div(self, args: list, *, env: Environment):
        numbers = self._numbers(args, env, minimum=2)
        if isinstance(numbers, Node):
            return numbers
        result = numbers[0]
        for arg, n in zip(args[1:], numbers[1:]):
            if n == 0:
                return self._error("division by zero", arg)
            # Integer operands stay integers
            if isinstance(result, int) and isinstance(n, int):
                result //= n
            else:
                result /= n
        return self._number(result)

    def _compare(self, args: list, env: Environment, op) -> Node:
        numbers = self._numbers(args, env, minimum=2)
        if isinstance(numbers, Node):
            return numbers
        ok = all(op(a, b) for a, b in zip(numbers, numbers[1:]))
        return integer(1 if ok else 0, self._position())

    @xla_builtin("gt")
    def _gt(self, args: list, *, env: Environment):
        return self._compare(args, env, lambda a, b: a > b)

    @xla_builtin("lt")
    def _lt(self, args: list, *, env: Environment):
        return self._compare(args, env, lambda a, b: a < b)

    @xla_builtin("eq", "=")
    def _eq(self, args: list, *, env: Environment):
        if len(args) < 2:
            return self._error(f"{self._form()} expects at least 2 arguments, got {len(args)}")
        values = self._eval_args(args, env)
        if isinstance(values, Node):
            return values
        keys = []
        for value in values:
            if isinstance(value, Atom) and value.subtype in NUMERIC_SUBTYPES:
                keys.append(numeric_value(value.text, value.subtype))
            else:
                keys.append(self.printer.pformat(value))
        ok = all(a == b for a, b in zip(keys, keys[1:]))
        return integer(1 if ok else 0, self._position())

    @xla_builtin("not")
    def _not(self, args: list, *, env: Environment):
        if len(args) != 1:
            return self._error(f"not expects exactly one argument, got {len(args)}")
        numbers = self._numbers(args, env)
        if isinstance(numbers, Node):
            return numbers
        return integer(1 if numbers[0] == 0 else 0, self._position())


# ===================================================================
# 4. Prompt rendering
# ===================================================================


class PromptRenderer:
    """Renders `<...>` prompt nodes into text with Mustache.

    Resource references contribute their template (the `prompt` or `template`
    key of a YAML/JSON mapping, or the whole text of any other file); every
    other child contributes its evaluated text. The joined template is
    rendered against the variables visible from the prompt's environment.

    Mustache tags only come from resource files: `{` always opens a runtime
    element, so inline text such as `<hi {{x}}>` evaluates a runtime node
    instead of carrying a template tag.
    """

    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator
        self.printer = Printer()
        self.renderer = pystache.Renderer(escape=lambda u: u)

    def __call__(self, node: Collection, *, env: Environment) -> Node:
        fragments = []
        for child in node.children:
            if child.kind is Kind.COMMENT:
                continue
            value = self.evaluator.eval(child, env)
            if value.is_signal:
                return value
            if isinstance(child, Atom) and child.text.startswith("@"):
                fragments.append(self._template(child.text))
            elif isinstance(value, Atom):
                fragments.append(value.text)
            else:
                fragments.append(self.printer.pformat(value))

        template = " ".join(f for f in fragments if f)
        rendered = self.renderer.render(template, self._context(env))
        self.evaluator._dbg("prompt", repr(template), "->", repr(rendered))
        return Atom(rendered, Subtype.NONE, node.position, node.tags)

    def _template(self, reference: str) -> str:
        resource = self.evaluator.resources.resolve(reference)
        try:
            data = resource.load()
        except yaml.YAMLError as e:
            raise ResourceError(f"could not parse {reference}: {e}") from e
        if isinstance(data, str):
            return data
        if isinstance(data, dict):
            for key in ("prompt", "template"):
                if isinstance(data.get(key), str):
                    return data[key]
        raise ValueError(f"resource {reference} has no 'prompt' or 'template' text")

    def _context(self, env: Environment) -> Dict[str, Any]:
        chain = []
        scope = env
        while scope is not None:
            chain.append(scope)
            scope = scope.parent
        context: Dict[str, Any] = {}
        # Inner scopes override outer ones
        for scope in reversed(chain):
            for name, value in scope.bindings.items():
                if isinstance(value, Procedure):
                    continue
                context[name] = to_python(value)
        return context


# ===================================================================
# 5. Script Execution
# ===================================================================

PHASE_LABELS = {'parse': 'ParseError', 'collapse': 'CollapseError', 'runtime': 'EvalError'}


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Optional[Node] = None
    tree: Optional[Node] = None
    error_message: Optional[str] = None
    error_position: Optional[int] = None
    error_token: Optional[Dict[str, Any]] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token['line']
            col = self.error_token.get('col')
            col_info = f", col {col}" if col is not None else ""
            return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Parses, collapses, and executes XLA code against a persistent root environment."""

    def __init__(self, host_object: Optional[XLAHost] = None, resources=None, output=None,
                 loop_limit: Optional[int] = None):
        self.host_object = host_object
        if isinstance(resources, (str, os.PathLike)):
            resources = ResourceTable(os.fspath(resources))
        self.evaluator = Evaluator(resources=resources, output=output, loop_limit=loop_limit)
        self.evaluator.register_handler(Kind.PROMPT, PromptRenderer(self.evaluator))
        self.root_env = Environment()
        StdLib(self.evaluator).bind(self.root_env)
        self._bind_host_api_methods()

    @property
    def resources(self) -> Optional[ResourceTable]:
        return self.evaluator.resources

    def register(self, name: str, fn: Callable[..., Node]):
        """Binds a native procedure `fn(args, *, env) -> Node` into the root environment."""
        self.root_env.bindings[name] = NativeProcedure(name, fn)

    def _bind_host_api_methods(self):
        """Bind @xla_api_method methods of the host into the root environment (kebab-case)."""
        host = self.host_object
        if host is None:
            return
        for name, method in host.api_methods().items():
            # Host methods take precedence over builtins of the same name
            self.root_env.bindings[name] = NativeProcedure(name, self._wrap_host_method(method))

    def _wrap_host_method(self, method):
        evaluator = self.evaluator

        def native(args, *, env):
            values = []
            for arg in args:
                value = evaluator.eval(arg, env)
                if value.is_signal:
                    return value
                values.append(to_python(value))
            site = evaluator.call_site()
            return from_python(method(*values), site.position if site is not None else 0)

        return native

    def _line_col(self, source: str, position: int) -> tuple[int, int]:
        position = max(0, min(position, len(source)))
        line = source.count("\n", 0, position) + 1
        col = position - (source.rfind("\n", 0, position) + 1) + 1
        return line, col

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self, err: Error) -> str:
        if not err.stacktrace:
            return ""
        return "XLA stacktrace: " + " ".join(f"({name})" for name in err.stacktrace)

    def _error_result(self, err: Error, source: str, tree: Optional[Node] = None) -> ExecutionResult:
        line, col = self._line_col(source, err.position)
        msg = f"{PHASE_LABELS.get(err.phase, 'Error')}: {err.message}"
        context = self._source_context(source, line, col)
        if context:
            msg = f"{msg}\n{context}"
        st = self._format_stacktrace(err)
        if st:
            msg += "\n" + st
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            tree=tree,
            error_message=msg,
            error_position=err.position,
            error_token={'line': line, 'col': col, 'position': err.position},
            side_effects=list(self.evaluator.side_effects),
        )

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        # Clear per-run state
        self.evaluator.side_effects.clear()
        self.evaluator.call_stack.clear()
        self.evaluator.depth = 0

        # 1. Parse
        tree = parse(source_code)
        if tree.is_error:
            return self._error_result(tree, source_code)

        # 2. Collapse tags
        tree = collapse(tree)
        if tree.is_error:
            return self._error_result(tree, source_code)

        # 3. Evaluate
        try:
            result = self.evaluator.eval(tree, self.root_env)
        except Exception as e:
            msg = f"InternalError: {type(e).__name__}: {e}"
            self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(status='error', tree=tree, error_message=msg,
                                   side_effects=list(self.evaluator.side_effects))
        if result.is_error:
            return self._error_result(result, source_code, tree)

        return ExecutionResult(
            status='success',
            value=final_value(result),
            tree=tree,
            side_effects=list(self.evaluator.side_effects),
        )
