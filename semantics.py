"""
Fern Semantics Analysis - name resolution
Turns tagged-tuple parse trees into the typed program table consumed by
the interpreter: names are resolved, record fields become positions,
constructors become type handles and multi-parameter functions are curried.
"""

from typing import Any, Dict, List, Optional, Tuple

from error_handling import FernSemanticsError
from program import (
  BOOL_TYPE,
  INT_TYPE,
  LAMBDA,
  UNIT_TYPE,
  TypeHandle,
  application_expr,
  binary_op_expr,
  bool_expr,
  builtin_expr,
  conditional_expr,
  field_access_expr,
  int_expr,
  lambda_expr,
  let_expr,
  make_program,
  make_record_type,
  make_sum_type,
  make_type_info,
  match_arm,
  match_expr,
  program_add_type,
  program_bind,
  program_handles,
  record_expr,
  string_expr,
  symbol_expr,
  tuple_expr,
  tuple_type,
  function_type,
  unit_expr,
  variant_constructor_expr,
)
from stdlib import BUILTIN_NAMES
from utilities import INT64_MAX


PRIMITIVE_TYPES = ("Int", "String", "Bool", "Unit")
COMPARISON_OPERATORS = ("Less", "LessEq", "Greater", "GreaterEq", "Equals", "And", "Or")

# Name bound by sequencing (a; b == let _ = a in b)
SEQUENCE_BINDING = "_"


# ============================================================================
# RESOLUTION ENVIRONMENT
# ============================================================================

def make_resolution_env(program: Dict, definition: Optional[str] = None) -> Dict:
  """Name tables derived from a program table.

  constructors: constructor name -> (handle, variant index, declared payload?)
  records:      list of (handle, record type definition)
  """
  constructors = {}
  records = []
  for handle in program_handles(program):
    type_def = program['types'][handle.index]
    if type_def['kind'] == 'sum':
      for index, (variant_name, payload_type) in enumerate(type_def['variants']):
        constructors[variant_name] = (handle, index, payload_type is not UNIT_TYPE)
    elif type_def['kind'] == 'record':
      records.append((handle, type_def))

  return {
      'program': program,
      'constructors': constructors,
      'records': records,
      'locals': frozenset(),
      'definition': definition
  }


def env_with_local(env: Dict, name: str) -> Dict:
  """Return new environment with a local name in scope"""
  return {**env, 'locals': env['locals'] | {name}}


def _error(env: Dict, message: str) -> FernSemanticsError:
  return FernSemanticsError(message, env.get('definition'))


# ============================================================================
# TYPE ANALYSIS
# ============================================================================

def analyze_type_expr(type_data, known_types: List[str]) -> Dict:
  """Analyze a parsed type expression into type info"""
  tag, value = type_data
  if tag == "TYPE_NAME":
    if value not in known_types:
      raise FernSemanticsError(f"unknown type: {value}")
    return make_type_info(value)
  elif tag == "TYPE_TUPLE":
    return tuple_type([analyze_type_expr(item, known_types) for item in value])
  elif tag == "TYPE_FUNCTION":
    param, result = value
    return function_type(analyze_type_expr(param, known_types), analyze_type_expr(result, known_types))
  raise FernSemanticsError(f"unknown type expression: {tag}")


def analyze_type_defs(type_defs: List[Dict], program: Dict, debug: bool = False) -> Dict:
  """Add sum and record type definitions to the program, in declaration order"""
  declared = [t['name'] for t in program['types']]
  for type_def in type_defs:
    if type_def['name'] in declared or type_def['name'] in PRIMITIVE_TYPES:
      raise FernSemanticsError(f"duplicate type: {type_def['name']}")
    declared.append(type_def['name'])
  known_types = list(PRIMITIVE_TYPES) + declared

  constructor_names = set(make_resolution_env(program)['constructors'])
  for type_def in type_defs:
    name = type_def['name']
    body_tag, body = type_def['body']

    if body_tag == "SUM_TYPE":
      variants = []
      for _tag, (variant_name, payload) in body:
        if variant_name in constructor_names:
          raise FernSemanticsError(f"duplicate constructor: {variant_name}")
        constructor_names.add(variant_name)
        payload_type = analyze_type_expr(payload, known_types) if payload is not None else UNIT_TYPE
        variants.append((variant_name, payload_type))
      program, handle = program_add_type(program, make_sum_type(name, variants))
    else:
      fields = []
      for _tag, (field_name, field_type) in body:
        if field_name in [f for f, _ in fields]:
          raise FernSemanticsError(f"duplicate field '{field_name}' in record {name}")
        fields.append((field_name, analyze_type_expr(field_type, known_types)))
      program, handle = program_add_type(program, make_record_type(name, fields))

    if debug:
      print(f"Declared type {handle}")

  return program


# ============================================================================
# EXPRESSION ANALYSIS
# ============================================================================

def analyze_expression(expr, env: Dict, debug: bool = False) -> Dict:
  """Analyze a parsed expression into a typed expression node"""
  tag, value = expr
  if debug:
    print(f"Analyzing: {tag}")

  if tag == "INTEGER":
    if value > INT64_MAX:
      raise _error(env, f"integer literal out of range: {value}")
    return int_expr(value)
  elif tag == "STRING":
    return string_expr(value)
  elif tag == "BOOLEAN":
    return bool_expr(value)
  elif tag == "UNIT":
    return unit_expr()
  elif tag == "IDENTIFIER":
    return analyze_identifier(value, env)
  elif tag == "CONSTRUCTOR":
    return analyze_constructor(value, env)
  elif tag == "TUPLE":
    return tuple_expr([analyze_expression(item, env, debug) for item in value])
  elif tag == "RECORD":
    return analyze_record(value, env, debug)
  elif tag == "FIELD":
    return analyze_field_access(value, env, debug)
  elif tag == "APPLY":
    callee, args = value
    return application_expr(analyze_expression(callee, env, debug),
                            [analyze_expression(arg, env, debug) for arg in args])
  elif tag == "BINARY_OP":
    op, lhs, rhs = value
    result_type = BOOL_TYPE if op in COMPARISON_OPERATORS else INT_TYPE
    return binary_op_expr(op, analyze_expression(lhs, env, debug), analyze_expression(rhs, env, debug), result_type)
  elif tag == "LET":
    name, rhs, body = value
    return let_expr(name, analyze_expression(rhs, env, debug),
                    analyze_expression(body, env_with_local(env, name), debug))
  elif tag == "SEQ":
    first, rest = value
    return let_expr(SEQUENCE_BINDING, analyze_expression(first, env, debug),
                    analyze_expression(rest, env_with_local(env, SEQUENCE_BINDING), debug))
  elif tag == "IF":
    cond, cons, alt = value
    return conditional_expr(analyze_expression(cond, env, debug),
                            analyze_expression(cons, env, debug),
                            analyze_expression(alt, env, debug))
  elif tag == "MATCH":
    return analyze_match(value, env, debug)
  elif tag == "LAMBDA":
    params, body = value
    return analyze_lambda(params, body, env, debug)

  raise _error(env, f"unsupported syntax: {tag}")


def analyze_identifier(name: str, env: Dict) -> Dict:
  """Local names shadow top-level ones; both resolve to SYMBOL nodes"""
  if name in env['locals'] or name in env['program']['bindings']:
    return symbol_expr(name)
  raise _error(env, f"unbound identifier: {name}")


def analyze_constructor(name: str, env: Dict) -> Dict:
  found = env['constructors'].get(name)
  if found is None:
    raise _error(env, f"unknown constructor: {name}")
  handle, index, has_payload = found
  constructor = variant_constructor_expr(handle, index, make_type_info(handle.name))
  if has_payload:
    return constructor
  # payload-less variants are values: None == None ()
  return application_expr(constructor, [unit_expr()], make_type_info(handle.name))


def analyze_lambda(params: List[str], body, env: Dict, debug: bool = False) -> Dict:
  """\\a b -> e becomes \\a -> \\b -> e"""
  inner_env = env
  for param in params:
    inner_env = env_with_local(inner_env, param)
  result = analyze_expression(body, inner_env, debug)
  for param in reversed(params):
    result = lambda_expr(param, result, make_type_info("Function"))
  return result


def analyze_record(fields: List[Tuple[str, Any]], env: Dict, debug: bool = False) -> Dict:
  """Reorder a record literal to the field order of its record type"""
  names = [field[1][0] for field in fields]
  if len(set(names)) != len(names):
    raise _error(env, f"duplicate field in record literal: {', '.join(names)}")

  candidates = [(handle, t) for handle, t in env['records']
                if sorted(f for f, _ in t['fields']) == sorted(names)]
  if not candidates:
    raise _error(env, f"no record type has exactly the fields {', '.join(names)}")
  if len(candidates) > 1:
    raise _error(env, f"ambiguous record literal, matches {', '.join(t['name'] for _, t in candidates)}")

  handle, record_type = candidates[0]
  values = {field_name: field_value for _tag, (field_name, field_value) in fields}
  ordered = [analyze_expression(values[field_name], env, debug) for field_name, _ in record_type['fields']]
  return record_expr(ordered, make_type_info(record_type['name']))


def analyze_field_access(value, env: Dict, debug: bool = False) -> Dict:
  target_data, field = value
  target = analyze_expression(target_data, env, debug)

  if isinstance(field, int):
    return field_access_expr(target, field)

  # A target whose record type is known picks its own field index
  target_type = target.get('type_info')
  for _handle, record_type in env['records']:
    if target_type and target_type['name'] == record_type['name']:
      names = [f for f, _ in record_type['fields']]
      if field in names:
        return field_access_expr(target, names.index(field), record_type['fields'][names.index(field)][1])

  positions = set()
  field_types = []
  for _handle, record_type in env['records']:
    names = [f for f, _ in record_type['fields']]
    if field in names:
      positions.add(names.index(field))
      field_types.append(record_type['fields'][names.index(field)][1])
  if not positions:
    raise _error(env, f"unknown field: {field}")
  if len(positions) > 1:
    raise _error(env, f"field '{field}' has different positions in different record types")
  return field_access_expr(target, positions.pop(), field_types[0] if len(field_types) == 1 else None)


def analyze_match(value, env: Dict, debug: bool = False) -> Dict:
  """Resolve match arms to variant indices; arms must be exhaustive"""
  matchee_data, arms_data = value
  matchee = analyze_expression(matchee_data, env, debug)

  handle: Optional[TypeHandle] = None
  seen = set()
  arms = []
  for _tag, (constructor, binding, body) in arms_data:
    found = env['constructors'].get(constructor)
    if found is None:
      raise _error(env, f"unknown constructor in match arm: {constructor}")
    arm_handle, index, _has_payload = found
    if handle is not None and arm_handle != handle:
      raise _error(env, f"match arm {constructor} belongs to {arm_handle.name}, expected {handle.name}")
    handle = arm_handle
    if index in seen:
      raise _error(env, f"duplicate match arm: {constructor}")
    seen.add(index)

    if binding == "_":
      binding = None
    arm_env = env_with_local(env, binding) if binding is not None else env
    arms.append(match_arm(index, binding, analyze_expression(body, arm_env, debug)))

  variants = env['program']['types'][handle.index]['variants']
  missing = [name for i, (name, _) in enumerate(variants) if i not in seen]
  if missing:
    raise _error(env, f"non-exhaustive match on {handle.name}, missing {', '.join(missing)}")
  return match_expr(matchee, arms)


# ============================================================================
# PROGRAM ANALYSIS
# ============================================================================

def seed_builtins(program: Dict) -> Dict:
  """Declare every built-in under its surface name"""
  for surface_name, builtin_id in BUILTIN_NAMES.items():
    program = program_bind(program, surface_name, builtin_expr(builtin_id))
  return program


def analyze_program(declarations: List[Tuple[str, Any]], debug: bool = False) -> Dict:
  """Analyze parsed declarations into a program table"""
  type_defs = [value for tag, value in declarations if tag == "TYPE_DEF"]
  function_defs = [value for tag, value in declarations if tag == "FUNCTION_DEF"]

  program = analyze_type_defs(type_defs, make_program(), debug)
  program = seed_builtins(program)

  # Every top-level name is visible in every body (mutual recursion)
  seen = set()
  for definition in function_defs:
    if definition['name'] in seen:
      raise FernSemanticsError(f"duplicate definition: {definition['name']}")
    seen.add(definition['name'])
    program = program_bind(program, definition['name'], unit_expr())

  for definition in function_defs:
    name = definition['name']
    env = make_resolution_env(program, name)
    if definition['params']:
      expr = analyze_lambda(definition['params'], definition['body'], env, debug)
    else:
      expr = analyze_expression(definition['body'], env, debug)
    if expr['type'] != LAMBDA:
      raise FernSemanticsError("top-level definitions must be functions", name)
    program = program_bind(program, name, expr, expr['type_info'])
    if debug:
      print(f"Resolved definition {name}")

  return program


def analyze_standalone_expression(expr, program: Dict, debug: bool = False) -> Dict:
  """Analyze one expression against an existing program (REPL)"""
  return analyze_expression(expr, make_resolution_env(program), debug)


# ============================================================================
# FACTORY FUNCTIONS (for compatibility with main.py)
# ============================================================================

def create_analyzer(debug: bool = False):
  """Factory function returning an analyzer"""
  return type('Analyzer', (), {
      'analyze': lambda self, declarations: analyze_program(declarations, debug),
      'analyze_expression': lambda self, expr, program: analyze_standalone_expression(expr, program, debug),
      'debug': debug
  })()


def create_debug_analyzer():
  """Factory function returning a debug analyzer"""
  return create_analyzer(debug=True)
