from xla.xla_datatypes import (
    Atom, Collection, Comment, Error, Closure, NativeProcedure, Yield, Environment, Kind, Subtype
)
from xla.xla_parser import parse
from xla.xla_collapse import collapse
from xla.xla_interpreter import Evaluator
from xla.xla_printer import Printer
from xla.xla_resources import ResourceTable, ResourceNotFound
from xla.xla_runtime import ScriptRunner, ExecutionResult, StdLib, XLAHost, xla_api_method
