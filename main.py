"""
Fern Programming Language - Main Entry Point
A small typed functional language run by a tree-walking evaluator
"""

import sys
import argparse
from pathlib import Path
from typing import Dict, List
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from error_handling import FernHostError, FernParseError, FernRuntimeError, FernSemanticsError
from interpreter import DEFAULT_ENTRY, DEFAULT_RECURSION_LIMIT, create_interpreter, create_debug_interpreter
from parsing import KEYWORDS, create_parser, create_debug_parser, pretty_print_tree
from program import format_expr, format_type
from semantics import create_analyzer, create_debug_analyzer
from stdlib import BUILTIN_FUNCTIONS, BUILTIN_NAMES
from values import format_value


VERSION = "Fern v0.1.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      description='Fern Programming Language - typed functional scripts',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.fern                 # Run main in a Fern script
  %(prog)s --entry start script.fern   # Run another entry function
  %(prog)s -i                          # Interactive mode
  %(prog)s --parse script.fern         # Parse and show the parse tree
  %(prog)s --analyze script.fern       # Resolve names and show the program table
  %(prog)s --debug script.fern         # Run with evaluation traces on stderr
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Fern script file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--entry',
      default=DEFAULT_ENTRY,
      help=f'Entry function to run (default: {DEFAULT_ENTRY})'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the parse tree (for debugging)'
  )

  parser.add_argument(
      '--analyze',
      action='store_true',
      help='Parse and resolve file, show the program table (for debugging)'
  )

  parser.add_argument(
      '--show-result',
      action='store_true',
      help='Print the value returned by the entry function'
  )

  parser.add_argument(
      '--recursion-limit',
      type=int,
      default=DEFAULT_RECURSION_LIMIT,
      help=f'Python frame limit for evaluation (default: {DEFAULT_RECURSION_LIMIT})'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def report_file_error(script_path: str, error: Exception) -> None:
  if isinstance(error, FileNotFoundError):
    print(f"Error: Script file '{script_path}' not found")
    print("  Hint: Check the file path and make sure the file exists")
  elif isinstance(error, PermissionError):
    print(f"Error: Permission denied reading '{script_path}'")
    print("  Hint: Make sure you have read permissions for this file")
  else:
    print(f"Error: Cannot decode file '{script_path}': {error}")
    print("  Hint: Make sure the file is a text file with UTF-8 encoding")


def report_runtime_error(script_path: str, error: FernRuntimeError) -> None:
  """Print the banner report for a fatal evaluation error"""
  title = "Host Error" if isinstance(error, FernHostError) else "Runtime Error"
  print(f"\n{'='*70}")
  print(f"{title} in '{script_path}'")
  print(f"{'='*70}")
  print(f"\nError: {error.message}")
  if error.node_kind:
    print(f"\nWhile evaluating: {error.node_kind}")
  print(f"Category: {error.category}")
  print(f"\n{'='*70}\n")


def load_program(script_path: str, debug: bool = False) -> Dict:
  """Parse and resolve a script into a program table"""
  parser = create_debug_parser() if debug else create_parser()
  analyzer = create_debug_analyzer() if debug else create_analyzer()
  declarations = parser.parse_file(script_path)
  return analyzer.analyze(declarations)


def parse_file(script_path: str, debug: bool = False) -> None:
  """Parse a Fern script file and show the parse tree"""
  try:
    parser = create_debug_parser() if debug else create_parser()

    print(f"Parsing {script_path}...")
    declarations = parser.parse_file(script_path)

    print(f"\nParsed {len(declarations)} declarations:")
    print("=" * 50)

    for i, declaration in enumerate(declarations, 1):
      print(f"\nDeclaration {i}:")
      print(pretty_print_tree(declaration))

  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as e:
    report_file_error(script_path, e)
    sys.exit(1)
  except FernParseError as e:
    print(f"Parse error in {e}")
    sys.exit(1)


def analyze_file(script_path: str, debug: bool = False) -> None:
  """Parse and resolve a Fern script file and show the program table"""
  try:
    print(f"Parsing and analyzing {script_path}...")
    program = load_program(script_path, debug)

    print(f"\nTypes ({len(program['types'])}):")
    print("=" * 50)
    for index, type_def in enumerate(program['types']):
      if type_def['kind'] == 'sum':
        variants = " | ".join(
            f"{name} {format_type(payload)}" if payload['name'] != "Unit" else name
            for name, payload in type_def['variants'])
        print(f"  #{index} {type_def['name']} = {variants}")
      else:
        fields = ", ".join(f"{name} : {format_type(t)}" for name, t in type_def['fields'])
        print(f"  #{index} {type_def['name']} = {{ {fields} }}")

    user_bindings = {name: entry for name, entry in program['bindings'].items()
                     if name not in BUILTIN_NAMES or entry[0]['type'] != "BUILTIN_FN"}
    print(f"\nDefinitions ({len(user_bindings)}):")
    print("=" * 50)
    for name, (expr, _type_info) in user_bindings.items():
      print(f"\n{name}:")
      print(format_expr(expr, 1))

  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as e:
    report_file_error(script_path, e)
    sys.exit(1)
  except FernParseError as e:
    print(f"Parse error in {e}")
    sys.exit(1)
  except FernSemanticsError as e:
    print(f"Semantic analysis error in '{script_path}': {e}")
    sys.exit(1)


def run_script_file(script_path: str, entry: str = DEFAULT_ENTRY, debug: bool = False,
                    show_result: bool = False, recursion_limit: int = DEFAULT_RECURSION_LIMIT) -> None:
  """Run a Fern script file: resolve it, then evaluate its entry function"""
  try:
    program = load_program(script_path, debug)
    if debug:
      print(f"Resolved {len(program['bindings'])} definitions and {len(program['types'])} types")

    interpreter = (create_debug_interpreter(recursion_limit=recursion_limit) if debug
                   else create_interpreter(recursion_limit=recursion_limit))
    result = interpreter.run(program, entry)
    sys.stdout.flush()

    if show_result:
      print(f"\n=> {format_value(result, program)}")

  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as e:
    report_file_error(script_path, e)
    sys.exit(1)
  except FernParseError as e:
    print(f"Parse error in {e}")
    sys.exit(1)
  except FernSemanticsError as e:
    print(f"Semantic analysis error in '{script_path}': {e}")
    sys.exit(1)
  except FernRuntimeError as e:
    sys.stdout.flush()
    report_runtime_error(script_path, e)
    sys.exit(1)


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.fern_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First time, no history yet
  readline.set_history_length(1000)

  completions = KEYWORDS + list(BUILTIN_NAMES) + [":env", ":types", ":help", "exit."]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(lambda: readline.write_history_file(history_file))


def print_repl_help() -> None:
  print("REPL Commands:")
  print("  :env              - Show session definitions")
  print("  :types            - Show declared types")
  print("  :help             - Show this help")
  print("  exit.             - Exit REPL")
  print()
  print("Language features:")
  print("  double x = x * 2.                  - Function definition")
  print("  type Opt = Some Int | None.        - Sum type")
  print("  type Point = { x : Int, y : Int }. - Record type")
  print("  double 4                           - Evaluate an expression")
  print("  let p = {x = 1, y = 2} in p.y      - Let binding and field access")
  print("  match Some 3 with | Some n -> n | None -> 0")


def run_interactive_mode(debug: bool = False, recursion_limit: int = DEFAULT_RECURSION_LIMIT) -> None:
  """Run Fern in interactive mode.

  Declarations accumulate in the session; each new batch re-resolves the
  whole session so later definitions can refer to earlier ones.
  """
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit.' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  parser = create_debug_parser() if debug else create_parser()
  analyzer = create_debug_analyzer() if debug else create_analyzer()
  interpreter = (create_debug_interpreter(recursion_limit=recursion_limit) if debug
                 else create_interpreter(recursion_limit=recursion_limit))

  session: List = []
  program = analyzer.analyze(session)

  while True:
    try:
      code = input("fern> ")
      stripped = code.strip()

      if stripped == "exit.":
        break
      if not stripped:
        continue

      if stripped == ":help":
        print_repl_help()
        continue

      if stripped == ":env":
        user_names = [name for name, (expr, _t) in program['bindings'].items()
                      if name not in BUILTIN_NAMES or expr['type'] != "BUILTIN_FN"]
        if user_names:
          for name in user_names:
            print(f"  {name} : {format_type(program['bindings'][name][1])}")
        else:
          print("  (no user-defined bindings)")
        print(f"  built-ins: {', '.join(sorted(BUILTIN_NAMES))}")
        continue

      if stripped == ":types":
        if not program['types']:
          print("  (no types declared)")
        for index, type_def in enumerate(program['types']):
          members = type_def['variants'] if type_def['kind'] == 'sum' else type_def['fields']
          print(f"  #{index} {type_def['name']} ({type_def['kind']}): {', '.join(m for m, _ in members)}")
        continue

      try:
        if stripped.endswith('.'):
          declarations = parser.parse_string(code, "<repl>")
          program = analyzer.analyze(session + declarations)
          session = session + declarations
          for tag, declaration in declarations:
            kind = "type" if tag == "TYPE_DEF" else "function"
            print(f"Defined {kind}: {declaration['name']}")
        else:
          parsed = parser.parse_expression(code, "<repl>")
          expr = analyzer.analyze_expression(parsed, program)
          result = interpreter.evaluate(expr, program)
          sys.stdout.flush()
          print(f"=> {format_value(result, program)}")
      except FernParseError as e:
        print(f"Parse error: {e}")
      except FernSemanticsError as e:
        print(f"Semantic error: {e}")
      except FernRuntimeError as e:
        print("\nRuntime Error:")
        print(f"  {e}")
        print()

    except KeyboardInterrupt:
      print("\nGoodbye!")
      break
    except EOFError:
      print("\nGoodbye!")
      break


def show_language_info() -> None:
  """Show Fern language information"""
  print("Fern Programming Language")
  print("=" * 50)
  print("A small typed functional language with:")
  print("• Curried functions and closures")
  print("• Sum types and exhaustive pattern matching")
  print("• Records and tuples")
  print(f"• Built-ins: {', '.join(entry['name'] for entry in BUILTIN_FUNCTIONS.values())}")
  print()


def main() -> None:
  """Main entry point for Fern"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args()

  if len(sys.argv) == 1:
    show_language_info()
    print("Starting interactive mode...")
    print("Use 'fern --help' for command line options")
    print()
    run_interactive_mode(debug=False)
    return

  if args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist")
      sys.exit(1)

    if args.parse:
      parse_file(args.script, debug=args.debug)
    elif args.analyze:
      analyze_file(args.script, debug=args.debug)
    else:
      run_script_file(args.script, entry=args.entry, debug=args.debug,
                      show_result=args.show_result, recursion_limit=args.recursion_limit)

  elif args.interactive:
    run_interactive_mode(debug=args.debug, recursion_limit=args.recursion_limit)

  else:
    arg_parser.print_help()
    print()
    show_language_info()


if __name__ == "__main__":
  main()
