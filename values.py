"""
Fern runtime values
Every value is an immutable dictionary tagged with its variant name
"""

from typing import Any, Dict, Optional, Sequence


# ============================================================================
# VALUE VARIANTS
# ============================================================================

UNIT = "Unit"
TUPLE = "Tuple"
FUNCTION = "Function"
STRING = "String"
INTEGER = "Integer"
VARIANT = "Variant"
VARIANT_CONSTRUCTOR_FN = "VariantConstructorFn"
BUILTIN_FN = "BuiltInFn"

CALLABLE_VARIANTS = (FUNCTION, VARIANT_CONSTRUCTOR_FN, BUILTIN_FN)


# ============================================================================
# CONSTRUCTORS
# ============================================================================

def make_value(value: Any, type_name: str) -> Dict:
  """Create an immutable runtime value"""
  return {
      'value': value,
      'type': type_name
  }


def make_unit() -> Dict:
  return make_value(None, UNIT)


def make_tuple(items: Sequence[Dict]) -> Dict:
  return make_value(tuple(items), TUPLE)


def make_string(text: str) -> Dict:
  return make_value(text, STRING)


def make_integer(number: int) -> Dict:
  return make_value(number, INTEGER)


def make_bool(flag: bool) -> Dict:
  """Booleans are the integers 0 and 1"""
  return make_integer(1 if flag else 0)


def make_function(param: str, captured: Dict[str, Dict], body: Dict) -> Dict:
  """Create a closure.

  `captured` must already be a snapshot; `body` is the typed lambda body,
  shared with the program tree and never copied.
  """
  return make_value({
      'param': param,
      'captured': captured,
      'body': body
  }, FUNCTION)


def make_variant(handle: Any, index: int, payload: Dict) -> Dict:
  return make_value({
      'handle': handle,
      'index': index,
      'payload': payload
  }, VARIANT)


def make_variant_constructor_fn(handle: Any, index: int) -> Dict:
  return make_value({
      'handle': handle,
      'index': index
  }, VARIANT_CONSTRUCTOR_FN)


def make_builtin_fn(builtin_id: str) -> Dict:
  return make_value(builtin_id, BUILTIN_FN)


# ============================================================================
# PREDICATES
# ============================================================================

def is_callable_value(value: Dict) -> bool:
  return value.get('type') in CALLABLE_VARIANTS


def is_truthy(value: Dict) -> bool:
  """Conditional truthiness: every integer except 0 selects the consequent"""
  return value['value'] != 0


# ============================================================================
# DISPLAY
# ============================================================================

def _variant_name(handle: Any, index: int, program: Optional[Dict]) -> str:
  if program is not None:
    types = program.get('types', [])
    if 0 <= handle.index < len(types):
      variants = types[handle.index].get('variants', [])
      if 0 <= index < len(variants):
        return variants[index][0]
  return f"{handle.name}#{index}"


def format_value(value: Dict, program: Optional[Dict] = None) -> str:
  """Render a value for humans (REPL, --show-result, debug traces)

  Passing the program table lets variants print with their declared names.
  """
  kind = value['type']
  payload = value['value']

  if kind == UNIT:
    return "()"
  elif kind == INTEGER:
    return str(payload)
  elif kind == STRING:
    escaped = payload.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n').replace('\t', '\\t')
    return f'"{escaped}"'
  elif kind == TUPLE:
    return "(" + ", ".join(format_value(item, program) for item in payload) + ")"
  elif kind == FUNCTION:
    return f"<function {payload['param']}>"
  elif kind == BUILTIN_FN:
    return f"<builtin {payload}>"
  elif kind == VARIANT_CONSTRUCTOR_FN:
    return f"<constructor {_variant_name(payload['handle'], payload['index'], program)}>"
  elif kind == VARIANT:
    name = _variant_name(payload['handle'], payload['index'], program)
    inner = payload['payload']
    if inner['type'] == UNIT:
      return name
    rendered = format_value(inner, program)
    if inner['type'] == VARIANT and inner['value']['payload']['type'] != UNIT:
      rendered = f"({rendered})"
    return f"{name} {rendered}"
  return f"<{kind}>"
