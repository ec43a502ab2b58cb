"""
Tests for runtime value helpers and value display
"""

import pytest

from program import TypeHandle, make_program, make_sum_type, UNIT_TYPE, INT_TYPE
from values import (
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


class TestValueConstructors:
  """Values are tagged dictionaries"""

  def test_booleans_are_integers(self):
    assert make_bool(True) == {'value': 1, 'type': 'Integer'}
    assert make_bool(False) == {'value': 0, 'type': 'Integer'}

  def test_tuple_payload_is_immutable(self):
    value = make_tuple([make_integer(1), make_string("a")])
    assert isinstance(value['value'], tuple)
    assert len(value['value']) == 2

  def test_callable_variants(self):
    handle = TypeHandle(0, "Opt")
    assert is_callable_value(make_function("x", {}, {'type': 'UNIT', 'value': None}))
    assert is_callable_value(make_variant_constructor_fn(handle, 0))
    assert is_callable_value(make_builtin_fn("Print"))
    assert not is_callable_value(make_integer(3))
    assert not is_callable_value(make_variant(handle, 0, make_unit()))

  def test_truthiness(self):
    assert not is_truthy(make_integer(0))
    assert is_truthy(make_integer(5))
    assert is_truthy(make_integer(-1))


class TestFormatValue:
  """Human readable rendering"""

  @pytest.fixture
  def program(self):
    program = make_program(types=[make_sum_type("Opt", [("Some", INT_TYPE), ("None", UNIT_TYPE)])])
    return program

  def test_scalars(self):
    assert format_value(make_unit()) == "()"
    assert format_value(make_integer(-42)) == "-42"
    assert format_value(make_string('say "hi"\n')) == '"say \\"hi\\"\\n"'

  def test_tuples(self):
    value = make_tuple([make_integer(1), make_string("a"), make_tuple([])])
    assert format_value(value) == '(1, "a", ())'

  def test_callables(self, program):
    handle = TypeHandle(0, "Opt")
    assert format_value(make_function("x", {}, {})) == "<function x>"
    assert format_value(make_builtin_fn("Print")) == "<builtin Print>"
    assert format_value(make_variant_constructor_fn(handle, 0), program) == "<constructor Some>"

  def test_variants_use_declared_names(self, program):
    handle = TypeHandle(0, "Opt")
    assert format_value(make_variant(handle, 0, make_integer(3)), program) == "Some 3"
    assert format_value(make_variant(handle, 1, make_unit()), program) == "None"

  def test_nested_variant_is_parenthesized(self, program):
    handle = TypeHandle(0, "Opt")
    inner = make_variant(handle, 0, make_integer(3))
    assert format_value(make_variant(handle, 0, inner), program) == "Some (Some 3)"

  def test_variant_without_program_falls_back_to_handle(self):
    handle = TypeHandle(2, "Opt")
    assert format_value(make_variant(handle, 1, make_unit())) == "Opt#1"
