import sys

from tern.tern_runtime import ScriptRunner
from tern.tern_printer import Printer
from tern.tern_serialize import load_document, serialize
from tern.tern_errors import ProgramFormatError

USAGE = "usage: tern.py PROGRAM [--entry NAME] [--format json|yaml]"


def parse_args(argv):
    """Returns (path, entry, fmt); raises SystemExit(2) on bad usage."""
    path = None
    entry = None
    fmt = None
    rest = list(argv)
    while rest:
        arg = rest.pop(0)
        if arg in ("--entry", "--format"):
            if not rest:
                print(USAGE, file=sys.stderr)
                raise SystemExit(2)
            value = rest.pop(0)
            if arg == "--entry":
                entry = value
            else:
                fmt = value
        elif arg.startswith("-") or path is not None:
            print(USAGE, file=sys.stderr)
            raise SystemExit(2)
        else:
            path = arg
    if path is None or (fmt is not None and fmt not in ("json", "yaml")):
        print(USAGE, file=sys.stderr)
        raise SystemExit(2)
    return path, entry, fmt


def run_program_file(file_path: str, entry=None, fmt=None):
    """Run a program document non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    printer = Printer()
    try:
        document = load_document(file_path)
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    except ProgramFormatError as e:
        print(f"ProgramFormatError: {e}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_script(document, entry=entry)
    # Print side effects (from `print`)
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        if fmt:
            print(serialize(result.value, fmt=fmt))
        else:
            print(printer.display(result.value))


def main(argv=None):
    path, entry, fmt = parse_args(sys.argv[1:] if argv is None else argv)
    run_program_file(path, entry=entry, fmt=fmt)


if __name__ == "__main__":
    main()
