"""
Fern typed program representation
Typed expression nodes, type definitions and the global program table.
The table is built once by name resolution and only read during evaluation.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


# ============================================================================
# TYPE HANDLES AND TYPE INFO
# ============================================================================

@dataclass(frozen=True)
class TypeHandle:
  """Stable reference to a type definition in the program table"""
  index: int
  name: str

  def __str__(self) -> str:
    return f"{self.name}#{self.index}"


def make_type_info(name: str, parameters: Optional[List[Dict]] = None) -> Dict:
  """Create an immutable type info dictionary"""
  return {
      'name': name,
      'parameters': parameters or []
  }


INT_TYPE = make_type_info("Int")
STRING_TYPE = make_type_info("String")
BOOL_TYPE = make_type_info("Bool")
UNIT_TYPE = make_type_info("Unit")


def function_type(param: Dict, result: Dict) -> Dict:
  return make_type_info("Function", [param, result])


def tuple_type(items: List[Dict]) -> Dict:
  return make_type_info("Tuple", items)


def format_type(type_info: Optional[Dict]) -> str:
  if type_info is None:
    return "?"
  name = type_info['name']
  params = type_info['parameters']
  if name == "Function" and len(params) == 2:
    param, result = params
    left = format_type(param)
    if param and param['name'] == "Function":
      left = f"({left})"
    return f"{left} -> {format_type(result)}"
  if name == "Tuple":
    return "(" + ", ".join(format_type(p) for p in params) + ")"
  return name


# ============================================================================
# TYPE DEFINITIONS
# ============================================================================

def make_sum_type(name: str, variants: List[Tuple[str, Dict]]) -> Dict:
  """Sum type: ordered (variant name, payload type) pairs"""
  return {
      'kind': 'sum',
      'name': name,
      'variants': list(variants)
  }


def make_record_type(name: str, fields: List[Tuple[str, Dict]]) -> Dict:
  """Record type: ordered (field name, field type) pairs"""
  return {
      'kind': 'record',
      'name': name,
      'fields': list(fields)
  }


# ============================================================================
# TYPED EXPRESSION NODES
# ============================================================================

TUPLE = "TUPLE"
RECORD = "RECORD"
FIELD_ACCESS = "FIELD_ACCESS"
LET_BINDING = "LET_BINDING"
MATCH_SUM = "MATCH_SUM"
APPLICATION = "APPLICATION"
LAMBDA = "LAMBDA"
SYMBOL = "SYMBOL"
BOOLEAN_LITERAL = "BOOLEAN_LITERAL"
CONDITIONAL = "CONDITIONAL"
BINARY_OP = "BINARY_OP"
VARIANT_CONSTRUCTOR = "VARIANT_CONSTRUCTOR"
BUILTIN_FN = "BUILTIN_FN"
STRING_LITERAL = "STRING_LITERAL"
INTEGER_LITERAL = "INTEGER_LITERAL"
UNIT = "UNIT"

# Binary operators
ADD = "Add"
SUB = "Sub"
MUL = "Mul"
DIV = "Div"
MOD = "Mod"
LESS = "Less"
LESS_EQ = "LessEq"
GREATER = "Greater"
GREATER_EQ = "GreaterEq"
EQUALS = "Equals"
AND = "And"
OR = "Or"


def make_typed_expr(node_type: str, value: Any, type_info: Optional[Dict] = None) -> Dict:
  """Create an immutable typed expression node.

  The type annotation is carried for tooling only; evaluation never reads it.
  """
  return {
      'type': node_type,
      'value': value,
      'type_info': type_info
  }


def tuple_expr(items: List[Dict], type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(TUPLE, list(items), type_info)


def record_expr(fields: List[Dict], type_info: Optional[Dict] = None) -> Dict:
  """Record literal whose fields are already in positional order"""
  return make_typed_expr(RECORD, list(fields), type_info)


def field_access_expr(target: Dict, index: int, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(FIELD_ACCESS, {'target': target, 'index': index}, type_info)


def let_expr(name: str, rhs: Dict, body: Dict, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(LET_BINDING, {'name': name, 'rhs': rhs, 'body': body}, type_info)


def match_arm(index: int, binding: Optional[str], body: Dict) -> Dict:
  return {'index': index, 'binding': binding, 'body': body}


def match_expr(matchee: Dict, arms: List[Dict], type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(MATCH_SUM, {'matchee': matchee, 'arms': list(arms)}, type_info)


def application_expr(callee: Dict, args: List[Dict], type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(APPLICATION, {'callee': callee, 'args': list(args)}, type_info)


def lambda_expr(param: str, body: Dict, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(LAMBDA, {'param': param, 'body': body}, type_info)


def symbol_expr(name: str, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(SYMBOL, name, type_info)


def bool_expr(flag: bool) -> Dict:
  return make_typed_expr(BOOLEAN_LITERAL, flag, BOOL_TYPE)


def conditional_expr(cond: Dict, cons: Dict, alt: Dict, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(CONDITIONAL, {'cond': cond, 'cons': cons, 'alt': alt}, type_info)


def binary_op_expr(op: str, lhs: Dict, rhs: Dict, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(BINARY_OP, {'op': op, 'lhs': lhs, 'rhs': rhs}, type_info)


def variant_constructor_expr(handle: TypeHandle, index: int, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(VARIANT_CONSTRUCTOR, {'handle': handle, 'index': index}, type_info)


def builtin_expr(builtin_id: str, type_info: Optional[Dict] = None) -> Dict:
  return make_typed_expr(BUILTIN_FN, builtin_id, type_info)


def string_expr(text: str) -> Dict:
  return make_typed_expr(STRING_LITERAL, text, STRING_TYPE)


def int_expr(number: int) -> Dict:
  return make_typed_expr(INTEGER_LITERAL, number, INT_TYPE)


def unit_expr() -> Dict:
  return make_typed_expr(UNIT, None, UNIT_TYPE)


# ============================================================================
# GLOBAL PROGRAM TABLE
# ============================================================================

def make_program(bindings: Optional[Dict[str, Tuple[Dict, Optional[Dict]]]] = None,
                 types: Optional[List[Dict]] = None) -> Dict:
  """Create the global program table.

  bindings: top-level name -> (typed expression, type)
  types:    type definitions, indexed by TypeHandle.index
  """
  return {
      'bindings': dict(bindings or {}),
      'types': list(types or [])
  }


def program_bind(program: Dict, name: str, expr: Dict, type_info: Optional[Dict] = None) -> Dict:
  """Return new program with a top-level definition added"""
  return {
      **program,
      'bindings': {**program['bindings'], name: (expr, type_info)}
  }


def program_add_type(program: Dict, type_def: Dict) -> Tuple[Dict, TypeHandle]:
  """Return new program with a type definition appended, and its handle"""
  handle = TypeHandle(len(program['types']), type_def['name'])
  return {**program, 'types': program['types'] + [type_def]}, handle


def program_lookup(program: Dict, name: str) -> Optional[Tuple[Dict, Optional[Dict]]]:
  return program['bindings'].get(name)


def program_type_def(program: Dict, handle: TypeHandle) -> Optional[Dict]:
  types = program['types']
  if 0 <= handle.index < len(types):
    return types[handle.index]
  return None


def program_handles(program: Dict) -> List[TypeHandle]:
  return [TypeHandle(i, t['name']) for i, t in enumerate(program['types'])]


def format_expr(expr: Dict, indent: int = 0) -> str:
  """Pretty print a typed expression tree (used by --analyze)"""
  pad = "  " * indent
  kind = expr['type']
  value = expr['value']
  annotation = f" : {format_type(expr['type_info'])}" if expr.get('type_info') else ""

  if kind in (TUPLE, RECORD):
    lines = [f"{pad}{kind}{annotation}"]
    lines.extend(format_expr(item, indent + 1) for item in value)
    return "\n".join(lines)
  if kind == FIELD_ACCESS:
    return f"{pad}{kind} .{value['index']}\n" + format_expr(value['target'], indent + 1)
  if kind == LET_BINDING:
    return "\n".join([f"{pad}{kind} {value['name']}",
                      format_expr(value['rhs'], indent + 1),
                      format_expr(value['body'], indent + 1)])
  if kind == MATCH_SUM:
    lines = [f"{pad}{kind}", format_expr(value['matchee'], indent + 1)]
    for arm in value['arms']:
      binding = f" {arm['binding']}" if arm['binding'] else ""
      lines.append(f"{pad}  | #{arm['index']}{binding} ->")
      lines.append(format_expr(arm['body'], indent + 2))
    return "\n".join(lines)
  if kind == APPLICATION:
    lines = [f"{pad}{kind}", format_expr(value['callee'], indent + 1)]
    lines.extend(format_expr(arg, indent + 1) for arg in value['args'])
    return "\n".join(lines)
  if kind == LAMBDA:
    return f"{pad}{kind} {value['param']}{annotation}\n" + format_expr(value['body'], indent + 1)
  if kind == CONDITIONAL:
    return "\n".join([f"{pad}{kind}",
                      format_expr(value['cond'], indent + 1),
                      format_expr(value['cons'], indent + 1),
                      format_expr(value['alt'], indent + 1)])
  if kind == BINARY_OP:
    return "\n".join([f"{pad}{kind} {value['op']}",
                      format_expr(value['lhs'], indent + 1),
                      format_expr(value['rhs'], indent + 1)])
  if kind == VARIANT_CONSTRUCTOR:
    return f"{pad}{kind} {value['handle']} #{value['index']}"
  return f"{pad}{kind} {value!r}{annotation}"
