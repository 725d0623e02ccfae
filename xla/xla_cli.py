import os
import sys
from pathlib import Path

from xla.xla_printer import Printer
from xla.xla_resources import ResourceError
from xla.xla_runtime import ScriptRunner


def default_resources() -> str | None:
    """The resource directory from XLA_RESOURCES, else ./resources when present."""
    configured = os.environ.get("XLA_RESOURCES")
    if configured:
        return configured
    if Path("resources").is_dir():
        return "resources"
    return None


def run_script_file(file_path: str):
    """Run an XLA script file and exit with the appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    except OSError as e:
        print(f"Error: cannot read {file_path}: {e}", file=sys.stderr)
        raise SystemExit(1)

    try:
        runner = ScriptRunner(resources=default_resources())
    except ResourceError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    result = runner.handle_script(source)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        print(Printer().pformat(result.value))


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("usage: xla FILE", file=sys.stderr)
        raise SystemExit(1)
    run_script_file(argv[0])


if __name__ == "__main__":
    main()
