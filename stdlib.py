"""
Fern Standard Library
Host implementations of the built-in functions and the dispatcher for them
"""

from typing import Dict, Callable, List, Optional
import re
import sys

from values import (
  INTEGER,
  STRING,
  make_integer,
  make_string,
  make_tuple,
  make_unit,
)
from utilities import (
  INT64_MAX,
  INT64_MIN,
  expect_tuple_of,
  expect_value_type,
  host_error,
  unsupported_error,
)


INTEGER_TEXT = re.compile(r'[+-]?[0-9]+')


def _stdout(context: Optional[Dict]):
  if context is not None and context.get('stdout') is not None:
    return context['stdout']
  return sys.stdout


# ============================================================================
# I/O FUNCTIONS
# ============================================================================

def fern_file_read(path: Dict, context: Optional[Dict] = None) -> Dict:
  """Read a whole file as UTF-8 text, line endings untouched"""
  expect_value_type("FileRead", path, STRING, "BUILTIN_FN")
  try:
    with open(path['value'], 'r', encoding='utf-8', newline='') as f:
      return make_string(f.read())
  except (OSError, UnicodeDecodeError) as e:
    raise host_error("FileRead", f"cannot read '{path['value']}': {e}") from e


def fern_print(text: Dict, context: Optional[Dict] = None) -> Dict:
  """Write a string to stdout without a trailing newline"""
  expect_value_type("Print", text, STRING, "BUILTIN_FN")
  _stdout(context).write(text['value'])
  return make_unit()


def fern_printi(number: Dict, context: Optional[Dict] = None) -> Dict:
  """Write an integer in decimal without a trailing newline"""
  expect_value_type("Printi", number, INTEGER, "BUILTIN_FN")
  _stdout(context).write(str(number['value']))
  return make_unit()


# ============================================================================
# STRING FUNCTIONS
# ============================================================================

def fern_string_parse_int(text: Dict, context: Optional[Dict] = None) -> Dict:
  """Parse a signed 64-bit decimal integer"""
  expect_value_type("StringParseInt", text, STRING, "BUILTIN_FN")
  raw = text['value']
  if not INTEGER_TEXT.fullmatch(raw):
    raise host_error("StringParseInt", f"invalid integer literal {raw!r}")
  number = int(raw)
  if number < INT64_MIN or number > INT64_MAX:
    raise host_error("StringParseInt", f"integer literal out of range {raw!r}")
  return make_integer(number)


def fern_string_get_first(text: Dict, context: Optional[Dict] = None) -> Dict:
  """Split off the first character: "abc" -> ("a", "bc")"""
  expect_value_type("StringGetFirst", text, STRING, "BUILTIN_FN")
  raw = text['value']
  if not raw:
    raise host_error("StringGetFirst", "cannot take the first character of an empty string")
  return make_tuple([make_string(raw[0]), make_string(raw[1:])])


def fern_string_split(args: Dict, context: Optional[Dict] = None) -> Dict:
  """Split at the first occurrence of a separator.

  ("a,b,c", ",") -> ("a", "b,c"); a missing separator gives (input, "").
  """
  text, separator = expect_tuple_of("StringSplit", args, [STRING, STRING], "BUILTIN_FN")
  raw = text['value']
  sep = separator['value']
  position = raw.find(sep)
  if position < 0:
    return make_tuple([text, make_string("")])
  return make_tuple([make_string(raw[:position]), make_string(raw[position + len(sep):])])


# ============================================================================
# BUILT-IN FUNCTION REGISTRY
# ============================================================================

def make_builtin_function(builtin_id: str, func: Callable, surface_name: str,
                          type_signature: str = "") -> Dict:
  """Create a built-in function entry"""
  return {
      'type': 'builtin_function',
      'id': builtin_id,
      'name': surface_name,
      'func': func,
      'type_signature': type_signature
  }


BUILTIN_FUNCTIONS: Dict[str, Dict] = {
    # I/O functions
    "FileRead": make_builtin_function("FileRead", fern_file_read, "read_file", "String -> String"),
    "Print": make_builtin_function("Print", fern_print, "print", "String -> Unit"),
    "Printi": make_builtin_function("Printi", fern_printi, "printi", "Int -> Unit"),

    # String functions
    "StringParseInt": make_builtin_function(
        "StringParseInt", fern_string_parse_int, "parse_int", "String -> Int"),
    "StringGetFirst": make_builtin_function(
        "StringGetFirst", fern_string_get_first, "string_first", "String -> (String, String)"),
    "StringSplit": make_builtin_function(
        "StringSplit", fern_string_split, "string_split", "(String, String) -> (String, String)"),
}

# Surface names used by the resolver to seed built-in declarations
BUILTIN_NAMES: Dict[str, str] = {
    entry['name']: builtin_id for builtin_id, entry in BUILTIN_FUNCTIONS.items()
}


def dispatch_builtin(builtin_id: str, argument: Dict, context: Optional[Dict] = None) -> Dict:
  """Apply a built-in to an already evaluated argument"""
  entry = BUILTIN_FUNCTIONS.get(builtin_id)
  if entry is None:
    raise unsupported_error("built-in", str(builtin_id), "BUILTIN_FN")
  return entry['func'](argument, context)


def get_builtin_function(builtin_id: str) -> Dict:
  """Get a built-in function entry by id"""
  if builtin_id in BUILTIN_FUNCTIONS:
    return BUILTIN_FUNCTIONS[builtin_id]
  raise unsupported_error("built-in", str(builtin_id), "BUILTIN_FN")


def list_builtin_functions() -> List[str]:
  """List all available built-in ids"""
  return list(BUILTIN_FUNCTIONS.keys())
