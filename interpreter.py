"""
Fern Interpreter - tree-walking evaluator
Walks the typed program tree produced by name resolution.
Scopes are persistent dictionaries; the only side effects are the
built-in I/O functions, which write to the context's output stream.
"""

from typing import Callable, Dict, Optional
import sys
import threading

from error_handling import FernInternalError, FernRuntimeError
from program import (
  APPLICATION,
  BINARY_OP,
  BOOLEAN_LITERAL,
  BUILTIN_FN,
  CONDITIONAL,
  FIELD_ACCESS,
  INTEGER_LITERAL,
  LAMBDA,
  LET_BINDING,
  MATCH_SUM,
  RECORD,
  STRING_LITERAL,
  SYMBOL,
  TUPLE,
  UNIT,
  VARIANT_CONSTRUCTOR,
  ADD, SUB, MUL, DIV, MOD, LESS, LESS_EQ, GREATER, GREATER_EQ, EQUALS, AND, OR,
  program_lookup,
  program_type_def,
)
from stdlib import dispatch_builtin
from utilities import (
  check_int64,
  expect_value_type,
  shape_error,
  truncating_div,
  truncating_mod,
  unsupported_error,
)
from values import (
  FUNCTION,
  INTEGER,
  STRING,
  TUPLE as TUPLE_VALUE,
  VARIANT,
  VARIANT_CONSTRUCTOR_FN,
  format_value,
  is_callable_value,
  is_truthy,
  make_bool,
  make_builtin_fn,
  make_function,
  make_integer,
  make_string,
  make_tuple,
  make_unit,
  make_variant,
  make_variant_constructor_fn,
)


DEFAULT_ENTRY = "main"

# Recursion is the only loop construct, so evaluation runs on a worker thread
# whose stack and recursion limit allow deep Fern call chains
DEFAULT_RECURSION_LIMIT = 200000
STACK_BYTES_PER_FRAME = 2048


# ============================================================================
# EXECUTION CONTEXT
# ============================================================================

def make_execution_context(program: Dict, stdout=None, trace=None, debug: bool = False) -> Dict:
  """Create the explicit state of one evaluation.

  program: global program table (read-only)
  stdout:  stream written by Print/Printi (defaults to sys.stdout)
  trace:   stream for debug traces (defaults to sys.stderr)
  """
  return {
      'program': program,
      'stdout': stdout if stdout is not None else sys.stdout,
      'trace': trace if trace is not None else sys.stderr,
      'debug': debug
  }


def _trace(context: Dict, message: str) -> None:
  if context['debug']:
    print(message, file=context['trace'])


# ============================================================================
# ENVIRONMENT OPERATIONS
# ============================================================================

def make_scope(bindings: Optional[Dict[str, Dict]] = None) -> Dict[str, Dict]:
  """Create a local scope"""
  return dict(bindings or {})


def scope_bind(scope: Dict[str, Dict], name: str, value: Dict) -> Dict[str, Dict]:
  """Return new scope with name bound to value.

  The old scope is left untouched, so once the sub-evaluation that uses the
  new scope returns, a shadowed binding is visible again.
  """
  return {**scope, name: value}


def scope_snapshot(scope: Dict[str, Dict]) -> Dict[str, Dict]:
  """Copy of the scope captured by a closure"""
  return dict(scope)


def lookup_symbol(name: str, scope: Dict[str, Dict], context: Dict) -> Dict:
  """Resolve a name: local scope first, then the global program table"""
  if name in scope:
    return scope[name]

  entry = program_lookup(context['program'], name)
  if entry is None:
    raise FernInternalError(f"unbound symbol: {name}", SYMBOL)

  expr, _type_info = entry
  if expr['type'] == LAMBDA:
    # top-level functions capture nothing
    return make_function(expr['value']['param'], {}, expr['value']['body'])
  if expr['type'] == BUILTIN_FN:
    return make_builtin_fn(expr['value'])
  raise FernInternalError(
      f"top-level binding '{name}' is neither a function nor a built-in ({expr['type']})", SYMBOL)


# ============================================================================
# APPLICATION
# ============================================================================

def apply_value(callee: Dict, argument: Dict, context: Dict) -> Dict:
  """Apply a callable value to one already evaluated argument"""
  if not isinstance(callee, dict) or not is_callable_value(callee):
    raise shape_error("application", "a callable value", callee, APPLICATION)

  kind = callee['type']
  if kind == FUNCTION:
    func = callee['value']
    call_scope = scope_bind(func['captured'], func['param'], argument)
    _trace(context, f"Calling function of {func['param']}")
    return eval_expr(func['body'], call_scope, context)
  elif kind == VARIANT_CONSTRUCTOR_FN:
    ctor = callee['value']
    return make_variant(ctor['handle'], ctor['index'], argument)
  _trace(context, f"Calling built-in {callee['value']}")
  return dispatch_builtin(callee['value'], argument, context)


# ============================================================================
# EVALUATION
# ============================================================================

def eval_expr(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  """Evaluate a typed expression node under a local scope"""
  node_type = expr['type']
  _trace(context, f"Evaluating: {node_type}")

  if node_type == TUPLE or node_type == RECORD:
    return eval_tuple(expr, scope, context)
  elif node_type == FIELD_ACCESS:
    return eval_field_access(expr, scope, context)
  elif node_type == LET_BINDING:
    return eval_let_binding(expr, scope, context)
  elif node_type == MATCH_SUM:
    return eval_match_sum(expr, scope, context)
  elif node_type == APPLICATION:
    return eval_application(expr, scope, context)
  elif node_type == LAMBDA:
    value = expr['value']
    return make_function(value['param'], scope_snapshot(scope), value['body'])
  elif node_type == SYMBOL:
    return lookup_symbol(expr['value'], scope, context)
  elif node_type == BOOLEAN_LITERAL:
    return make_bool(expr['value'])
  elif node_type == CONDITIONAL:
    return eval_conditional(expr, scope, context)
  elif node_type == BINARY_OP:
    return eval_binary_op(expr, scope, context)
  elif node_type == VARIANT_CONSTRUCTOR:
    return eval_variant_constructor(expr, context)
  elif node_type == BUILTIN_FN:
    return make_builtin_fn(expr['value'])
  elif node_type == STRING_LITERAL:
    return make_string(expr['value'])
  elif node_type == INTEGER_LITERAL:
    return make_integer(expr['value'])
  elif node_type == UNIT:
    return make_unit()

  raise unsupported_error("expression", str(node_type))


def eval_tuple(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  """Tuples and records: evaluate items left to right"""
  return make_tuple([eval_expr(item, scope, context) for item in expr['value']])


def eval_field_access(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  value = expr['value']
  target = eval_expr(value['target'], scope, context)
  expect_value_type("field access", target, TUPLE_VALUE, FIELD_ACCESS)

  items = target['value']
  index = value['index']
  if not 0 <= index < len(items):
    raise FernInternalError(
        f"field index {index} out of range for a {len(items)}-tuple", FIELD_ACCESS)
  return items[index]


def eval_let_binding(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  value = expr['value']
  bound = eval_expr(value['rhs'], scope, context)
  return eval_expr(value['body'], scope_bind(scope, value['name'], bound), context)


def eval_match_sum(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  value = expr['value']
  matchee = eval_expr(value['matchee'], scope, context)
  expect_value_type("match", matchee, VARIANT, MATCH_SUM)

  variant = matchee['value']
  for arm in value['arms']:
    if arm['index'] == variant['index']:
      arm_scope = scope
      if arm['binding'] is not None:
        arm_scope = scope_bind(scope, arm['binding'], variant['payload'])
      return eval_expr(arm['body'], arm_scope, context)

  raise FernInternalError(
      f"no match arm for variant {variant['index']} of {variant['handle']}", MATCH_SUM)


def eval_application(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  """Curried application: f a b == apply(apply(f, a), b)"""
  value = expr['value']
  current = eval_expr(value['callee'], scope, context)
  for arg_expr in value['args']:
    argument = eval_expr(arg_expr, scope, context)
    current = apply_value(current, argument, context)
  return current


def eval_conditional(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  value = expr['value']
  cond = eval_expr(value['cond'], scope, context)
  expect_value_type("conditional", cond, INTEGER, CONDITIONAL)
  branch = value['cons'] if is_truthy(cond) else value['alt']
  return eval_expr(branch, scope, context)


def _integer_op(op: str, lhs: int, rhs: int) -> int:
  if op == ADD:
    return check_int64(lhs + rhs, op)
  elif op == SUB:
    return check_int64(lhs - rhs, op)
  elif op == MUL:
    return check_int64(lhs * rhs, op)
  elif op == DIV or op == MOD:
    if rhs == 0:
      raise FernInternalError(f"division by zero in {op}", BINARY_OP)
    if op == DIV:
      return check_int64(truncating_div(lhs, rhs), op)
    return truncating_mod(lhs, rhs)
  elif op == LESS:
    return int(lhs < rhs)
  elif op == LESS_EQ:
    return int(lhs <= rhs)
  elif op == GREATER:
    return int(lhs > rhs)
  elif op == GREATER_EQ:
    return int(lhs >= rhs)
  elif op == EQUALS:
    return int(lhs == rhs)
  elif op == AND:
    return lhs & rhs
  elif op == OR:
    return lhs | rhs
  raise unsupported_error("operator", str(op), BINARY_OP)


def eval_binary_op(expr: Dict, scope: Dict[str, Dict], context: Dict) -> Dict:
  value = expr['value']
  op = value['op']
  lhs = eval_expr(value['lhs'], scope, context)
  rhs = eval_expr(value['rhs'], scope, context)

  if lhs['type'] == INTEGER and rhs['type'] == INTEGER:
    return make_integer(_integer_op(op, lhs['value'], rhs['value']))
  if lhs['type'] == STRING and rhs['type'] == STRING:
    if op == EQUALS:
      return make_bool(lhs['value'] == rhs['value'])
    raise FernInternalError(f"operator {op} is not defined on strings", BINARY_OP)
  raise FernInternalError(
      f"operator {op} is not defined on {lhs['type']} and {rhs['type']}", BINARY_OP)


def eval_variant_constructor(expr: Dict, context: Dict) -> Dict:
  value = expr['value']
  handle = value['handle']
  index = value['index']

  type_def = program_type_def(context['program'], handle)
  if type_def is None or type_def.get('kind') != 'sum':
    raise FernInternalError(f"type handle {handle} does not name a sum type", VARIANT_CONSTRUCTOR)
  if not 0 <= index < len(type_def['variants']):
    raise FernInternalError(
        f"sum type {type_def['name']} has no variant {index}", VARIANT_CONSTRUCTOR)
  return make_variant_constructor_fn(handle, index)


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def run_with_deep_stack(func: Callable[[], Dict], recursion_limit: int = DEFAULT_RECURSION_LIMIT) -> Dict:
  """Call func on a worker thread sized for recursion_limit Python frames.

  Exceptions raised by func are re-raised in the calling thread. The host
  recursion limit is restored once the worker finishes.
  """
  outcome = {}

  def target():
    try:
      outcome['result'] = func()
    except BaseException as e:
      outcome['error'] = e

  previous_limit = sys.getrecursionlimit()
  previous_stack = threading.stack_size()
  sys.setrecursionlimit(max(previous_limit, recursion_limit))
  try:
    threading.stack_size(max(previous_stack, recursion_limit * STACK_BYTES_PER_FRAME))
    try:
      worker = threading.Thread(target=target, name="fern-eval")
      worker.start()
    finally:
      threading.stack_size(previous_stack)
    worker.join()
  finally:
    sys.setrecursionlimit(previous_limit)

  if 'error' in outcome:
    raise outcome['error']
  return outcome['result']


def _guard_recursion(func: Callable[[], Dict]) -> Callable[[], Dict]:
  def guarded() -> Dict:
    try:
      return func()
    except RecursionError as e:
      raise FernRuntimeError("evaluation exceeded the maximum recursion depth") from e
  return guarded


def run_program(program: Dict, entry: str = DEFAULT_ENTRY, stdout=None, trace=None,
                debug: bool = False, recursion_limit: int = DEFAULT_RECURSION_LIMIT) -> Dict:
  """Run a program: evaluate the body of its entry function once.

  The entry function's parameter is never bound; the entry point is niladic.
  """
  context = make_execution_context(program, stdout, trace, debug)

  found = program_lookup(program, entry)
  if found is None:
    raise FernInternalError(f"entry point '{entry}' not found")
  expr, _type_info = found
  if expr['type'] != LAMBDA:
    raise FernInternalError(f"entry point '{entry}' is not a function definition", expr['type'])

  _trace(context, f"Running entry point {entry}")
  result = run_with_deep_stack(
      _guard_recursion(lambda: eval_expr(expr['value']['body'], make_scope(), context)),
      recursion_limit)

  _trace(context, f"Result: {format_value(result, program)}")
  return result


def evaluate(expr: Dict, program: Dict, scope: Optional[Dict[str, Dict]] = None,
             stdout=None, trace=None, debug: bool = False,
             recursion_limit: int = DEFAULT_RECURSION_LIMIT) -> Dict:
  """Evaluate a single expression against a program (REPL and tests)"""
  context = make_execution_context(program, stdout, trace, debug)
  return run_with_deep_stack(
      _guard_recursion(lambda: eval_expr(expr, make_scope(scope), context)),
      recursion_limit)


# ============================================================================
# FACTORY FUNCTIONS (for compatibility with main.py)
# ============================================================================

def create_interpreter(debug: bool = False, stdout=None, trace=None,
                       recursion_limit: int = DEFAULT_RECURSION_LIMIT):
  """Factory function returning an interpreter bound to output streams"""
  def run(program: Dict, entry: str = DEFAULT_ENTRY) -> Dict:
    return run_program(program, entry, stdout, trace, debug, recursion_limit)

  def evaluate_expr(expr: Dict, program: Dict, scope: Optional[Dict] = None) -> Dict:
    return evaluate(expr, program, scope, stdout, trace, debug, recursion_limit)

  return type('Interpreter', (), {
      'run': lambda self, program, entry=DEFAULT_ENTRY: run(program, entry),
      'evaluate': lambda self, expr, program, scope=None: evaluate_expr(expr, program, scope),
      'debug': debug
  })()


def create_debug_interpreter(stdout=None, trace=None, recursion_limit: int = DEFAULT_RECURSION_LIMIT):
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True, stdout=stdout, trace=trace, recursion_limit=recursion_limit)
