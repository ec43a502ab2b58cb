"""
Utilities module for the Fern interpreter
Error builders, shape validation and 64-bit integer arithmetic
"""

from typing import Dict, Optional, Sequence

from error_handling import FernHostError, FernInternalError


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


# ==================== ERROR MESSAGE BUILDERS ====================

def shape_error(
  site: str,
  expected: str,
  actual: Dict,
  node_kind: Optional[str] = None
) -> FernInternalError:
  """
  Generate a value-shape mismatch error

  Args:
    site: Where the mismatch happened (e.g. "field access")
    expected: Expected value variant(s)
    actual: Actual value dict
    node_kind: Kind of the expression node being evaluated

  Returns:
    FernInternalError with formatted message
  """
  actual_type = actual.get('type', 'Unknown') if isinstance(actual, dict) else type(actual).__name__
  return FernInternalError(
    f"{site} requires {expected}, got {actual_type}",
    node_kind
  )


def unsupported_error(what: str, kind: str, node_kind: Optional[str] = None) -> FernInternalError:
  """
  Generate an error for a construct the evaluator does not implement

  Args:
    what: Category of the construct ("expression", "built-in", "operator")
    kind: The construct's kind/identifier

  Returns:
    FernInternalError with formatted message
  """
  return FernInternalError(f"unsupported {what}: {kind}", node_kind or kind)


def host_error(builtin_id: str, message: str) -> FernHostError:
  return FernHostError(f"{builtin_id}: {message}", "BUILTIN_FN")


# ==================== VALIDATION UTILITIES ====================

def expect_value_type(
  site: str,
  value: Dict,
  expected: str,
  node_kind: Optional[str] = None
) -> Dict:
  """
  Validate that a value has the expected variant

  Returns:
    The value itself, so calls can be chained

  Raises:
    FernInternalError if validation fails
  """
  if not isinstance(value, dict) or value.get('type') != expected:
    raise shape_error(site, expected, value, node_kind)
  return value


def expect_tuple_of(
  site: str,
  value: Dict,
  expected_types: Sequence[str],
  node_kind: Optional[str] = None
) -> tuple:
  """
  Validate that a value is a Tuple whose items have the given variants

  Returns:
    The tuple's item values
  """
  expect_value_type(site, value, "Tuple", node_kind)
  items = value['value']
  if len(items) != len(expected_types):
    raise FernInternalError(
      f"{site} requires a {len(expected_types)}-tuple, got {len(items)} items",
      node_kind
    )
  for item, expected in zip(items, expected_types):
    expect_value_type(site, item, expected, node_kind)
  return items


# ==================== INTEGER ARITHMETIC ====================

def check_int64(result: int, op: str) -> int:
  """Reject results that do not fit a signed 64-bit integer"""
  if result < INT64_MIN or result > INT64_MAX:
    raise FernInternalError(f"integer overflow in {op}: {result}", "BINARY_OP")
  return result


def truncating_div(lhs: int, rhs: int) -> int:
  """Integer division rounding toward zero"""
  quotient = abs(lhs) // abs(rhs)
  return quotient if (lhs >= 0) == (rhs > 0) else -quotient


def truncating_mod(lhs: int, rhs: int) -> int:
  """Remainder whose sign follows the dividend"""
  return lhs - rhs * truncating_div(lhs, rhs)
