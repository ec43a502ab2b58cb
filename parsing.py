"""
Fern Programming Language Parser
pyparsing grammar producing tagged-tuple parse trees, e.g. ("IDENTIFIER", "x")
"""

from typing import List, Any, Tuple
from pathlib import Path

from pyparsing import (
    DelimitedList, Forward, Keyword, Literal, MatchFirst, OneOrMore, OpAssoc,
    Optional as PyParsingOptional, ParseException, ParserElement, ParseResults, QuotedString,
    Regex, StringEnd, Suppress, ZeroOrMore, infix_notation, one_of,
    python_style_comment,
)

from error_handling import create_enhanced_parser_with_errors

# Enable packrat parsing for performance
ParserElement.enable_packrat()


KEYWORDS = ["let", "in", "if", "then", "else", "match", "with", "true", "false", "type", "and", "or"]

# Surface operator -> BINARY_OP operator name
OPERATORS = {
    '*': 'Mul', '/': 'Div', '%': 'Mod',
    '+': 'Add', '-': 'Sub',
    '<': 'Less', '<=': 'LessEq', '>': 'Greater', '>=': 'GreaterEq', '==': 'Equals',
    'and': 'And', 'or': 'Or',
}


# ============================================================================
# PARSE ACTIONS
# ============================================================================

def _parenthesized(t):
    # (e) is grouping, (a, b, ...) is a tuple
    if len(t) == 1:
        return t[0]
    return ("TUPLE", list(t))


def _fold_fields(t):
    result = t[0]
    for suffix in t[1:]:
        field = suffix[1:]
        result = ("FIELD", (result, int(field) if field.isdigit() else field))
    return result


def _application(t):
    if len(t) == 1:
        return t[0]
    return ("APPLY", (t[0], list(t[1:])))


def _operand(item):
    # operands of a lower precedence level may arrive wrapped in a one-item group
    while isinstance(item, ParseResults) and len(item) == 1:
        item = item[0]
    return item


def _fold_binary(t):
    items = t[0]
    result = _operand(items[0])
    for i in range(1, len(items), 2):
        result = ("BINARY_OP", (OPERATORS[items[i]], result, _operand(items[i + 1])))
    return result


def _sequence(t):
    # a; b; c -> SEQ(a, SEQ(b, c))
    result = t[-1]
    for item in reversed(list(t[:-1])):
        result = ("SEQ", (item, result))
    return result


def _match_arm(t):
    if len(t) == 3:
        return ("ARM", (t[0], t[1], t[2]))
    return ("ARM", (t[0], None, t[1]))


def _variant_decl(t):
    return ("VARIANT_DECL", (t[0], t[1] if len(t) > 1 else None))


def _function_type(t):
    if len(t) == 1:
        return t[0]
    return ("TYPE_FUNCTION", (t[0], t[1]))


def _type_tuple(t):
    if len(t) == 1:
        return t[0]
    return ("TYPE_TUPLE", list(t))


class FernGrammar:
    """Fern grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        """Setup the Fern grammar: declarations, expressions and types"""

        # Forward declarations for recursive structures
        expression = Forward()
        type_expr = Forward()

        # Keywords
        let_kw, in_kw, if_kw, then_kw, else_kw = (Keyword(k) for k in ("let", "in", "if", "then", "else"))
        match_kw, with_kw, type_kw = (Keyword(k) for k in ("match", "with", "type"))
        any_keyword = MatchFirst([Keyword(k) for k in KEYWORDS])

        def name():
            # lower-case identifiers, excluding keywords; '_' is a valid name
            return (~any_keyword + Regex(r"[a-z_][A-Za-z0-9_']*")).set_name("identifier")

        def constructor_name():
            return Regex(r"[A-Z][A-Za-z0-9_']*").set_name("constructor")

        # Literals
        integer = Regex(r"[0-9]+").set_parse_action(lambda t: ("INTEGER", int(t[0])))
        string_literal = QuotedString('"', esc_char='\\').set_parse_action(lambda t: ("STRING", t[0]))
        true_literal = Keyword("true").set_parse_action(lambda: ("BOOLEAN", True))
        false_literal = Keyword("false").set_parse_action(lambda: ("BOOLEAN", False))
        unit_literal = (Suppress("(") + Suppress(")")).set_parse_action(lambda: ("UNIT", None))

        identifier = name().set_parse_action(lambda t: ("IDENTIFIER", t[0]))
        constructor = constructor_name().set_parse_action(lambda t: ("CONSTRUCTOR", t[0]))

        # Tuples and parenthesized expressions
        parenthesized = (
            Suppress("(") + DelimitedList(expression, ",") + Suppress(")")
        ).set_parse_action(_parenthesized)

        # Record literals { key = value, key = value }
        record_field = (
            name() + Suppress("=") + expression
        ).set_parse_action(lambda t: ("FIELD_INIT", (t[0], t[1])))

        record_literal = (
            Suppress("{") + DelimitedList(record_field, ",") + Suppress("}")
        ).set_parse_action(lambda t: ("RECORD", list(t)))

        atom = (
            unit_literal |
            parenthesized |
            record_literal |
            string_literal |
            integer |
            true_literal |
            false_literal |
            constructor |
            identifier
        )

        # Field access must touch the dot: p.x, t.0 (a dot followed by space ends a declaration)
        field_suffix = Regex(r"\.([a-z_][A-Za-z0-9_']*|[0-9]+)").leave_whitespace()
        postfix = (atom + ZeroOrMore(field_suffix)).set_parse_action(_fold_fields)

        # Application by juxtaposition: f a b
        application = OneOrMore(postfix).set_parse_action(_application)

        # Infix operators, tightest first
        operator_expr = infix_notation(application, [
            (one_of("* / %"), 2, OpAssoc.LEFT, _fold_binary),
            (one_of("+ -"), 2, OpAssoc.LEFT, _fold_binary),
            (one_of("<= >= == < >"), 2, OpAssoc.LEFT, _fold_binary),
            (Keyword("and"), 2, OpAssoc.LEFT, _fold_binary),
            (Keyword("or"), 2, OpAssoc.LEFT, _fold_binary),
        ]).add_parse_action(lambda t: _operand(t[0]))

        let_expr = (
            Suppress(let_kw) + name() + Suppress("=") + expression + Suppress(in_kw) + expression
        ).set_parse_action(lambda t: ("LET", (t[0], t[1], t[2])))

        if_expr = (
            Suppress(if_kw) + expression + Suppress(then_kw) + expression + Suppress(else_kw) + expression
        ).set_parse_action(lambda t: ("IF", (t[0], t[1], t[2])))

        match_arm = (
            Suppress("|") + constructor_name() + PyParsingOptional(name()) + Suppress("->") + expression
        ).set_parse_action(_match_arm)

        match_expr = (
            Suppress(match_kw) + expression + Suppress(with_kw) + OneOrMore(match_arm)
        ).set_parse_action(lambda t: ("MATCH", (t[0], list(t[1:]))))

        lambda_expr = (
            Suppress(Literal("\\")) + OneOrMore(name()) + Suppress("->") + expression
        ).set_parse_action(lambda t: ("LAMBDA", (list(t[:-1]), t[-1])))

        simple_expr = let_expr | if_expr | match_expr | lambda_expr | operator_expr

        # Sequencing binds loosest: a; b
        expression <<= (simple_expr + ZeroOrMore(Suppress(";") + simple_expr)).set_parse_action(_sequence)

        # Types
        type_name = constructor_name().set_parse_action(lambda t: ("TYPE_NAME", t[0]))
        type_atom = type_name | (
            Suppress("(") + DelimitedList(type_expr, ",") + Suppress(")")
        ).set_parse_action(_type_tuple)
        type_expr <<= (type_atom + PyParsingOptional(Suppress("->") + type_expr)).set_parse_action(_function_type)

        variant_decl = (constructor_name() + PyParsingOptional(type_atom)).set_parse_action(_variant_decl)
        sum_type = (
            variant_decl + ZeroOrMore(Suppress("|") + variant_decl)
        ).set_parse_action(lambda t: ("SUM_TYPE", list(t)))

        field_decl = (
            name() + Suppress(":") + type_expr
        ).set_parse_action(lambda t: ("FIELD_DECL", (t[0], t[1])))
        record_type = (
            Suppress("{") + DelimitedList(field_decl, ",") + Suppress("}")
        ).set_parse_action(lambda t: ("RECORD_TYPE", list(t)))

        # Declarations end with '.'
        type_def = (
            Suppress(type_kw) + constructor_name() + Suppress("=") + (record_type | sum_type) + Suppress(".")
        ).set_parse_action(lambda t: ("TYPE_DEF", {"name": t[0], "body": t[1]}))

        function_def = (
            name() + ZeroOrMore(name()) + Suppress("=") + expression + Suppress(".")
        ).set_parse_action(lambda t: ("FUNCTION_DEF", {"name": t[0], "params": list(t[1:-1]), "body": t[-1]}))

        declaration = type_def | function_def
        program = ZeroOrMore(declaration) + StringEnd()

        program.ignore(python_style_comment)
        expression.ignore(python_style_comment)

        # Store grammar elements
        self.expression = expression
        self.type_expr = type_expr
        self.match_arm = match_arm
        self.declaration = declaration
        self.program = program
        self.standalone_expression = expression + StringEnd()
        self.standalone_expression.ignore(python_style_comment)


class FernParser:
    """Fern parser with enhanced error messages"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = FernGrammar(debug)

    def parse_string(self, text: str, filename: str = "<input>") -> List[Tuple[str, Any]]:
        """Parse a whole program into a list of declarations"""
        parse = create_enhanced_parser_with_errors(self.grammar.program.parse_string, text, filename)
        declarations = list(parse(text, parse_all=True))
        if self.debug:
            print(f"Parsed {len(declarations)} declarations from {filename}")
        return declarations

    def parse_file(self, path: str) -> List[Tuple[str, Any]]:
        """Parse a program file (UTF-8)"""
        text = Path(path).read_text(encoding='utf-8')
        return self.parse_string(text, str(path))

    def parse_expression(self, text: str, filename: str = "<input>") -> Tuple[str, Any]:
        """Parse a single expression"""
        parse = create_enhanced_parser_with_errors(self.grammar.standalone_expression.parse_string, text, filename)
        return parse(text, parse_all=True)[0]

    def is_declaration(self, text: str) -> bool:
        """True when text parses as declarations rather than an expression"""
        try:
            self.grammar.program.parse_string(text, parse_all=True)
            return bool(text.strip())
        except ParseException:
            return False


# ============================================================================
# FACTORY FUNCTIONS AND DISPLAY
# ============================================================================

def create_parser(debug: bool = False) -> FernParser:
    """Factory function returning a parser"""
    return FernParser(debug)


def create_debug_parser() -> FernParser:
    """Factory function returning a debug parser"""
    return FernParser(debug=True)


def pretty_print_tree(node: Any, indent: int = 0) -> str:
    """Pretty print a tagged-tuple parse tree"""
    pad = "  " * indent
    if isinstance(node, tuple) and len(node) == 2 and isinstance(node[0], str) and node[0].isupper():
        tag, value = node
        if isinstance(value, (tuple, list, dict)):
            return f"{pad}{tag}\n" + pretty_print_tree(value, indent + 1)
        return f"{pad}{tag} {value!r}"
    if isinstance(node, dict):
        return "\n".join(f"{pad}{key}:\n{pretty_print_tree(value, indent + 1)}" for key, value in node.items())
    if isinstance(node, (tuple, list)):
        if not node:
            return f"{pad}[]"
        return "\n".join(pretty_print_tree(item, indent) for item in node)
    return f"{pad}{node!r}"
