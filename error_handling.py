"""
Error types and error reporting for Fern
Parse errors are enriched with source context; runtime errors are fatal
"""

from typing import List, Optional, Dict
from pyparsing import ParseException
import re


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_parse_error(
    message: str,
    location: int,
    line: int,
    column: int,
    expected: Optional[List[str]] = None,
    got: Optional[str] = None,
    context: Optional[str] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable parse error structure"""
    return {
        'message': message,
        'location': location,
        'line': line,
        'column': column,
        'expected': expected or [],
        'got': got,
        'context': context,
        'suggestions': suggestions or []
    }


def format_parse_error(error: Dict) -> str:
    """Format parse error as string"""
    error_msg = f"Parse error at line {error['line']}, column {error['column']}:\n"
    error_msg += f"  {error['message']}\n"

    if error['expected']:
        error_msg += f"  Expected: {', '.join(error['expected'])}\n"

    if error['got']:
        error_msg += f"  Got: {error['got']}\n"

    if error['context']:
        error_msg += f"  Context:\n{error['context']}\n"

    if error['suggestions']:
        error_msg += "  Suggestions:\n"
        for suggestion in error['suggestions']:
            error_msg += f"    - {suggestion}\n"

    return error_msg


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")

    return '\n'.join(context_parts)


def extract_expected(exc: ParseException) -> List[str]:
    """Extract expected tokens from exception"""
    expected = []

    msg = str(exc)
    if "Expected" in msg:
        expected_match = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(|$)", msg)
        if expected_match:
            expected.append(expected_match.group(1))

    return expected if expected else ["valid syntax"]


def extract_got(source_text: str, line_num: int, col_num: int) -> str:
    """Extract what was actually found at the error location"""
    lines = source_text.split('\n')

    if line_num <= len(lines):
        error_line = lines[line_num - 1]
        if col_num <= len(error_line):
            start = max(0, col_num - 1)
            end = min(len(error_line), col_num + 10)
            got_text = error_line[start:end].strip()
            if got_text:
                return f"'{got_text}'"
            return "end of line"
    return "end of input"


def generate_suggestions(got: str, expected: List[str]) -> List[str]:
    """Generate helpful suggestions based on the error"""
    suggestions = []

    if got == "end of input":
        suggestions.append("Every declaration must end with '.'")

    if "{" in got and "=" not in got:
        suggestions.append("Record literals are written { field = value, ... }")

    if "|" in got:
        suggestions.append("Use 'or' for logical or; '|' only separates match arms and variants")

    if "&" in got:
        suggestions.append("Use 'and' for logical and")

    if "->" in got:
        suggestions.append("Lambdas are written \\x -> body and match arms | Ctor x -> body")

    if "-" in got and any(c.isdigit() for c in got):
        suggestions.append("Negative literals are not supported; write (0 - n)")

    return suggestions


def enhance_parse_exception_dict(exc: ParseException, source_text: str) -> Dict:
    """Convert pyparsing exception to an enhanced Fern error dict"""
    line_num = exc.lineno
    col_num = exc.column

    context = get_context_lines(source_text, line_num, col_num)
    expected = extract_expected(exc)
    got = extract_got(source_text, line_num, col_num)
    suggestions = generate_suggestions(got, expected)

    return make_parse_error(
        message=str(exc),
        location=exc.loc,
        line=line_num,
        column=col_num,
        expected=expected,
        got=got,
        context=context,
        suggestions=suggestions
    )


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class FernError(Exception):
    """Base class for every Fern error"""


class FernParseError(FernError):
    """Surface syntax error with source context"""
    def __init__(self, message: str, location: int = 0, line: int = 0, column: int = 0,
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 context: Optional[str] = None, suggestions: Optional[List[str]] = None,
                 filename: str = "<input>"):
        self.message = message
        self.location = location
        self.line = line
        self.column = column
        self.expected = expected or []
        self.got = got
        self.context = context
        self.suggestions = suggestions or []
        self.filename = filename
        super().__init__(message)

    def __str__(self) -> str:
        error_dict = make_parse_error(
            self.message, self.location, self.line, self.column,
            self.expected, self.got, self.context, self.suggestions
        )
        return f"{self.filename}: {format_parse_error(error_dict)}"


class FernSemanticsError(FernError):
    """Name resolution error (unbound names, bad records, bad match arms)"""

    def __init__(self, message: str, definition: Optional[str] = None):
        self.message = message
        self.definition = definition
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.definition:
            return f"Semantics error in '{self.definition}': {self.message}"
        return f"Semantics error: {self.message}"


class FernRuntimeError(FernError):
    """Fatal evaluation error. Evaluation never continues past one."""

    category = "runtime"

    def __init__(self, message: str, node_kind: Optional[str] = None):
        self.message = message
        self.node_kind = node_kind
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.node_kind:
            return f"{self.message} (while evaluating {self.node_kind})"
        return self.message


class FernInternalError(FernRuntimeError):
    """A violated typing or name-resolution invariant, or a missing feature"""

    category = "internal"


class FernHostError(FernRuntimeError):
    """A host-side failure: I/O errors, malformed integer text and the like"""

    category = "host"


def make_parse_error_from_exception(exc: ParseException, source_text: str,
                                    filename: str = "<input>") -> FernParseError:
    """Build a FernParseError from a pyparsing exception"""
    error_dict = enhance_parse_exception_dict(exc, source_text)
    return FernParseError(
        message=error_dict['message'],
        location=error_dict['location'],
        line=error_dict['line'],
        column=error_dict['column'],
        expected=error_dict['expected'],
        got=error_dict['got'],
        context=error_dict['context'],
        suggestions=error_dict['suggestions'],
        filename=filename
    )


def create_enhanced_parser_with_errors(parser_func, source_text: str, filename: str = "<input>"):
    """Wrapper to add enhanced error handling to any parser"""
    def enhanced_parse(*args, **kwargs):
        try:
            return parser_func(*args, **kwargs)
        except ParseException as e:
            raise make_parse_error_from_exception(e, source_text, filename) from e

    return enhanced_parse
