"""
Parsing tests for the Fern grammar
Tests literals, expressions, declarations and error reporting
"""

import pytest
from pyparsing import ParseResults
from parsing import FernGrammar, _fold_binary, create_parser, create_debug_parser, pretty_print_tree
from error_handling import FernParseError


def ident(name):
  return ("IDENTIFIER", name)


def integer(n):
  return ("INTEGER", n)


class TestLiterals:
  """Test literal parsing"""

  @pytest.fixture
  def parser(self):
    """Provide a fresh parser for each test"""
    return create_parser()

  def test_integer(self, parser):
    assert parser.parse_expression("42") == integer(42)

  def test_string_with_escapes(self, parser):
    assert parser.parse_expression(r'"a\"b\n"') == ("STRING", 'a"b\n')

  def test_booleans(self, parser):
    assert parser.parse_expression("true") == ("BOOLEAN", True)
    assert parser.parse_expression("false") == ("BOOLEAN", False)

  def test_unit(self, parser):
    assert parser.parse_expression("()") == ("UNIT", None)

  def test_tuple_and_grouping(self, parser):
    assert parser.parse_expression("(1, 2)") == ("TUPLE", [integer(1), integer(2)])
    assert parser.parse_expression("(1)") == integer(1)

  def test_record_literal(self, parser):
    assert parser.parse_expression("{x = 1, y = 2}") == ("RECORD", [
        ("FIELD_INIT", ("x", integer(1))),
        ("FIELD_INIT", ("y", integer(2))),
    ])

  def test_constructor(self, parser):
    assert parser.parse_expression("Some") == ("CONSTRUCTOR", "Some")

  def test_negative_literal_is_rejected(self, parser):
    with pytest.raises(FernParseError):
      parser.parse_expression("-1")


class TestExpressions:
  """Test expression forms and precedence"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_keyword_is_not_identifier(self, parser):
    with pytest.raises(FernParseError):
      parser.parse_expression("let")

  def test_identifier_prefixed_by_keyword(self, parser):
    assert parser.parse_expression("inc") == ident("inc")

  def test_application_by_juxtaposition(self, parser):
    assert parser.parse_expression("f a b") == ("APPLY", (ident("f"), [ident("a"), ident("b")]))

  def test_application_binds_tighter_than_operators(self, parser):
    result = parser.parse_expression("f x + 1")
    assert result == ("BINARY_OP", ("Add", ("APPLY", (ident("f"), [ident("x")])), integer(1)))

  def test_multiplication_binds_tighter(self, parser):
    result = parser.parse_expression("1 + 2 * 3")
    assert result == ("BINARY_OP", ("Add", integer(1), ("BINARY_OP", ("Mul", integer(2), integer(3)))))

  def test_left_associativity(self, parser):
    result = parser.parse_expression("10 - 3 - 2")
    assert result == ("BINARY_OP", ("Sub", ("BINARY_OP", ("Sub", integer(10), integer(3))), integer(2)))

  def test_grouped_operands_are_unwrapped(self):
    tokens = [[ParseResults([integer(1)]), "+", ParseResults([ParseResults([integer(2)])]), "-", integer(3)]]
    add = ("BINARY_OP", ("Add", integer(1), integer(2)))
    assert _fold_binary(tokens) == ("BINARY_OP", ("Sub", add, integer(3)))

  def test_every_level_yields_plain_tuples(self, parser):
    result = parser.parse_expression('"a" == "a" and 1 * 2 > 1')
    assert isinstance(result, tuple)
    op, lhs, rhs = result[1]
    assert op == "And"
    assert lhs == ("BINARY_OP", ("Equals", ("STRING", "a"), ("STRING", "a")))
    assert rhs[1][1] == ("BINARY_OP", ("Mul", integer(1), integer(2)))
    assert not isinstance(rhs, ParseResults)

  def test_comparison_and_logic(self, parser):
    result = parser.parse_expression("a < b and c or d")
    less = ("BINARY_OP", ("Less", ident("a"), ident("b")))
    both = ("BINARY_OP", ("And", less, ident("c")))
    assert result == ("BINARY_OP", ("Or", both, ident("d")))

  @pytest.mark.parametrize("source,op", [
      ("a <= b", "LessEq"),
      ("a >= b", "GreaterEq"),
      ("a == b", "Equals"),
      ("a > b", "Greater"),
      ("a % b", "Mod"),
      ("a / b", "Div"),
  ])
  def test_operator_names(self, parser, source, op):
    assert parser.parse_expression(source) == ("BINARY_OP", (op, ident("a"), ident("b")))

  def test_field_access(self, parser):
    result = parser.parse_expression("p.x.0")
    assert result == ("FIELD", (("FIELD", (ident("p"), "x")), 0))

  def test_field_access_argument(self, parser):
    result = parser.parse_expression("f p.1")
    assert result == ("APPLY", (ident("f"), [("FIELD", (ident("p"), 1))]))

  def test_let(self, parser):
    result = parser.parse_expression("let x = 1 in x")
    assert result == ("LET", ("x", integer(1), ident("x")))

  def test_if(self, parser):
    result = parser.parse_expression("if c then 1 else 2")
    assert result == ("IF", (ident("c"), integer(1), integer(2)))

  def test_match(self, parser):
    result = parser.parse_expression("match o with | Some n -> n | None -> 0")
    assert result == ("MATCH", (ident("o"), [
        ("ARM", ("Some", "n", ident("n"))),
        ("ARM", ("None", None, integer(0))),
    ]))

  def test_lambda(self, parser):
    result = parser.parse_expression("\\x y -> x")
    assert result == ("LAMBDA", (["x", "y"], ident("x")))

  def test_sequence(self, parser):
    result = parser.parse_expression("a; b; c")
    assert result == ("SEQ", (ident("a"), ("SEQ", (ident("b"), ident("c")))))

  def test_comment_in_expression(self, parser):
    assert parser.parse_expression("1 + # one\n 2") == ("BINARY_OP", ("Add", integer(1), integer(2)))


class TestDeclarations:
  """Test type and function declarations"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_function_definition(self, parser):
    result = parser.parse_string("add a b = a + b.")
    assert result == [("FUNCTION_DEF", {
        "name": "add",
        "params": ["a", "b"],
        "body": ("BINARY_OP", ("Add", ident("a"), ident("b"))),
    })]

  def test_definition_ending_in_field_access(self, parser):
    result = parser.parse_string("get p = p.x.\nmain _ = 0.")
    assert len(result) == 2
    assert result[0][1]["body"] == ("FIELD", (ident("p"), "x"))
    assert result[1][1]["name"] == "main"

  def test_sum_type(self, parser):
    result = parser.parse_string("type T = A Int | B (Int, String) | C.")
    assert result == [("TYPE_DEF", {"name": "T", "body": ("SUM_TYPE", [
        ("VARIANT_DECL", ("A", ("TYPE_NAME", "Int"))),
        ("VARIANT_DECL", ("B", ("TYPE_TUPLE", [("TYPE_NAME", "Int"), ("TYPE_NAME", "String")]))),
        ("VARIANT_DECL", ("C", None)),
    ])})]

  def test_record_type(self, parser):
    result = parser.parse_string("type P = { x : Int, f : Int -> Int }.")
    assert result == [("TYPE_DEF", {"name": "P", "body": ("RECORD_TYPE", [
        ("FIELD_DECL", ("x", ("TYPE_NAME", "Int"))),
        ("FIELD_DECL", ("f", ("TYPE_FUNCTION", (("TYPE_NAME", "Int"), ("TYPE_NAME", "Int"))))),
    ])})]

  def test_comments_are_ignored(self, parser):
    source = "# header\nf x = x. # trailing\n# footer\n"
    result = parser.parse_string(source)
    assert len(result) == 1

  def test_empty_program(self, parser):
    assert parser.parse_string("") == []

  def test_is_declaration(self, parser):
    assert parser.is_declaration("f x = x.")
    assert not parser.is_declaration("f x")
    assert not parser.is_declaration("")

  def test_parse_file(self, parser, tmp_path):
    path = tmp_path / "prog.fern"
    path.write_text("main _ = 1.\n", encoding="utf-8")
    assert parser.parse_file(str(path))[0][0] == "FUNCTION_DEF"

  def test_grammar_elements_are_exposed(self):
    grammar = FernGrammar()
    result = grammar.type_expr.parse_string("(Int, Int) -> Int")
    assert result[0][0] == "TYPE_FUNCTION"


class TestParseErrors:
  """Parse failures carry source context"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_missing_terminator(self, parser):
    with pytest.raises(FernParseError) as exc_info:
      parser.parse_string("f x = x", "prog.fern")
    error = exc_info.value
    assert error.line == 1
    assert error.filename == "prog.fern"
    assert "prog.fern" in str(error)

  def test_error_reports_line(self, parser):
    with pytest.raises(FernParseError) as exc_info:
      parser.parse_string("f x = x.\ng = = 1.")
    assert exc_info.value.line == 2
    assert "Error here" in exc_info.value.context


class TestDebugOutput:

  def test_debug_parser_reports_count(self, capsys):
    create_debug_parser().parse_string("a _ = 1. b _ = 2.")
    assert "Parsed 2 declarations" in capsys.readouterr().out

  def test_pretty_print_tree(self):
    text = pretty_print_tree(("LET", ("x", ("INTEGER", 1), ("IDENTIFIER", "x"))))
    assert text.splitlines()[0] == "LET"
    assert "INTEGER 1" in text
