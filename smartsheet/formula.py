"""Formula engine for SmartSheet grids.

Supports: literals, =, +, -, *, /, unary +/-, parentheses, cell refs (A1),
SUM(range) and AVERAGE(range) over vertical ranges (A1:A5).

Markers written to cells:
  #ERROR  arithmetic failure (bad syntax, division by zero, bad characters)
  #ERR    any other failure while compiling a formula

Dangling or textual references read as 0. Circular references are cut by
substituting 0 for an address that is already being computed.

Recalculation is a fixed two-pass sweep over the whole grid, not a
dependency-ordered evaluation: a value two or more hops away from an edit
may still be stale after one recalculate_grid() call.
"""

import logging
import math
import re
from decimal import Decimal

from smartsheet.models import Cell, Grid

logger = logging.getLogger(__name__)

ERROR = "#ERROR"
ERR = "#ERR"

Number = int | float
CellValue = int | float | str | None


# ── Error types ───────────────────────────────────────────────────

class FormulaError(Exception):
    """Base for all formula errors. `code` is the cell display string."""
    code: str = ERR

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code

class EvaluationError(FormulaError):
    code = ERROR

class InvalidAddress(FormulaError):
    code = ERR

class RangeTooLarge(FormulaError):
    code = ERR


# ── Helpers ───────────────────────────────────────────────────────

_ADDRESS_RE = re.compile(r'^([A-Z]+)([1-9][0-9]*)$')
_REF_RE = re.compile(r'[A-Z]+[0-9]+')
_SUM_RE = re.compile(r'SUM\(([A-Z0-9:]+)\)')
_AVERAGE_RE = re.compile(r'AVERAGE\(([A-Z0-9:]+)\)')

_NUMBER_RE = re.compile(r'^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*$')
_INTEGER_RE = re.compile(r'^\s*[+-]?\d+\s*$')

# Only these characters may reach the arithmetic parser
_ALLOWED_RE = re.compile(r'^[0-9+\-*/().\s]*$')
_TOKEN_RE = re.compile(r'\s*(?:(\d+\.?\d*|\.\d+)|(\S))')

# Cells a single SUM/AVERAGE range may span
MAX_RANGE_CELLS = 10_000


def column_letter(index: int) -> str:
    """0->A, 1->B, ..., 25->Z, 26->AA."""
    if index < 0:
        raise InvalidAddress(f"Column must be >= 0: {index}")
    result = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        result = chr(rem + ord('A')) + result
    return result


def column_index(letters: str) -> int:
    """A->0, B->1, ..., Z->25, AA->26."""
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord('A') + 1)
    return n - 1


def encode_address(row: int, col: int) -> str:
    """(0, 0) -> 'A1'."""
    if row < 0:
        raise InvalidAddress(f"Row must be >= 0: {row}")
    return f"{column_letter(col)}{row + 1}"


def decode_address(text: str) -> tuple[int, int]:
    """'A1' -> (row=0, col=0). Raises InvalidAddress on bad input."""
    m = _ADDRESS_RE.match(text)
    if not m:
        raise InvalidAddress(f"Bad cell address: {text!r}")
    return int(m.group(2)) - 1, column_index(m.group(1))


def parse_number(text: str) -> Number | None:
    """Strict numeric literal parse. Returns None for anything else."""
    if not _NUMBER_RE.match(text):
        return None
    if _INTEGER_RE.match(text):
        return int(text)
    value = float(text)
    return value if math.isfinite(value) else None


def normalize_number(value: float) -> Number:
    """Integral floats become ints so 7.0 displays and exports as 7."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return int(value)
    return value


def _to_literal(value: Number) -> str:
    """Render a number using only characters the evaluator accepts."""
    text = str(value)
    if 'e' in text or 'E' in text:
        text = format(Decimal(text), 'f')
    return text


# ── Arithmetic parser (recursive descent, no eval()) ──────────────

class _Parser:
    """Parses and evaluates: +, -, *, /, unary +/-, parentheses, numbers."""
    __slots__ = ('tokens', 'pos')

    def __init__(self, text: str):
        self.tokens: list[str] = []
        for m in _TOKEN_RE.finditer(text):
            self.tokens.append(m.group(1) or m.group(2))
        self.pos = 0

    def _peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _eat(self, expected=None):
        if self.pos >= len(self.tokens):
            raise EvaluationError("Unexpected end of expression")
        tok = self.tokens[self.pos]
        if expected and tok != expected:
            raise EvaluationError(f"Expected '{expected}', got '{tok}'")
        self.pos += 1
        return tok

    def _number(self) -> float:
        tok = self._eat()
        if not (tok[0].isdigit() or (tok[0] == '.' and len(tok) > 1)):
            raise EvaluationError(f"Expected number, got '{tok}'")
        return float(tok)

    def _factor(self) -> float:
        tok = self._peek()
        if tok == '(':
            self._eat('(')
            val = self._expr()
            self._eat(')')
            return val
        if tok == '-':
            self._eat()
            return -self._factor()
        if tok == '+':
            self._eat()
            return self._factor()
        return self._number()

    def _term(self) -> float:
        left = self._factor()
        while self._peek() in ('*', '/'):
            op = self._eat()
            right = self._factor()
            if op == '*':
                left *= right
            else:
                if right == 0:
                    raise EvaluationError("Division by zero")
                left /= right
        return left

    def _expr(self) -> float:
        left = self._term()
        while self._peek() in ('+', '-'):
            op = self._eat()
            right = self._term()
            left = left + right if op == '+' else left - right
        return left

    def parse(self) -> float:
        if not self.tokens:
            raise EvaluationError("Empty expression")
        result = self._expr()
        if self.pos != len(self.tokens):
            raise EvaluationError(f"Unexpected '{self.tokens[self.pos]}'")
        return result


def evaluate_expression(text: str) -> float:
    """Evaluate a fully substituted arithmetic expression.

    Raises EvaluationError for characters outside digits, operators,
    parentheses, dots and whitespace, for malformed syntax, for division by
    zero and for non-finite results.
    """
    if not _ALLOWED_RE.match(text):
        raise EvaluationError(f"Disallowed characters in {text!r}")
    try:
        result = _Parser(text).parse()
    except RecursionError:
        raise EvaluationError("Expression nested too deeply") from None
    if not math.isfinite(result):
        raise EvaluationError("Result is not a finite number")
    return result


# ── Reference resolution ─────────────────────────────────────────

def expand_range(range_text: str) -> list[str]:
    """'A1:A3' -> ['A1', 'A2', 'A3'].

    Only vertical ranges are supported: endpoints in different columns or
    a start row after the end row expand to an empty list. Raises
    RangeTooLarge past MAX_RANGE_CELLS cells.
    """
    parts = range_text.split(':')
    if len(parts) != 2:
        return []
    r1, c1 = decode_address(parts[0])
    r2, c2 = decode_address(parts[1])
    if c1 != c2:
        return []
    if r2 - r1 + 1 > MAX_RANGE_CELLS:
        raise RangeTooLarge(f"Range {range_text!r} spans more than {MAX_RANGE_CELLS} cells")
    return [encode_address(r, c1) for r in range(r1, r2 + 1)]


def resolve_reference(address: str, grid: Grid, visited: set[str] | None = None) -> Number:
    """Current numeric value of *address*, or 0 if it has none."""
    if visited and address in visited:
        return 0
    cell = grid.get(address)
    if cell is None:
        return 0
    value = cell.computed_value
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        number = parse_number(value)
        return 0 if number is None else number
    return 0


# ── Formula evaluation ────────────────────────────────────────────

def _expand_function(formula: str, pattern: re.Pattern, average: bool) -> str:
    m = pattern.search(formula)
    if not m:
        return formula
    refs = expand_range(m.group(1))
    summed = f"({'+'.join(refs)})"
    replacement = f"({summed}/{len(refs)})" if average else summed
    return formula[:m.start()] + replacement + formula[m.end():]


def compute_value(address: str, raw_value: str, grid: Grid,
                  visited: set[str] | None = None) -> CellValue:
    """Derive the computed value of one cell from its raw text.

    Literals become numbers when they parse as one and pass through as text
    otherwise. Formulas resolve references against *grid* and never raise:
    failures come back as ERROR or ERR.
    """
    if not raw_value.startswith('='):
        number = parse_number(raw_value)
        return raw_value if number is None else number

    seen = set(visited or ())
    seen.add(address.upper())
    formula = raw_value[1:].upper()

    try:
        formula = _expand_function(formula, _SUM_RE, average=False)
        formula = _expand_function(formula, _AVERAGE_RE, average=True)
        formula = _REF_RE.sub(
            lambda m: _to_literal(resolve_reference(m.group(0), grid, seen)),
            formula,
        )
        return normalize_number(evaluate_expression(formula))
    except EvaluationError as e:
        logger.debug("Evaluation failed for %s (%r): %s", address, raw_value, e)
        return ERROR
    except Exception as e:
        logger.debug("Formula failed for %s (%r): %s", address, raw_value, e)
        return ERR


# ── Sheet recalculation ───────────────────────────────────────────

def _recompute_all(cells: Grid, snapshot: Grid) -> Grid:
    return {
        address: cell.model_copy(update={
            "computed_value": compute_value(address, cell.raw_value, snapshot),
        })
        for address, cell in cells.items()
    }


def recalculate_grid(grid: Grid) -> Grid:
    """Re-derive every computed value; returns a new grid.

    Pass 1 resolves references against the incoming grid, pass 2 against
    the result of pass 1.
    """
    first = _recompute_all(grid, grid)
    return _recompute_all(first, first)


def set_raw_value(grid: Grid, address: str, raw_value: str) -> Grid:
    """Copy of *grid* with one cell's raw text replaced (style kept)."""
    decode_address(address)
    cell = grid.get(address)
    updated = dict(grid)
    if cell is None:
        updated[address] = Cell(raw_value=raw_value)
    else:
        updated[address] = cell.model_copy(update={"raw_value": raw_value})
    return updated


def apply_edit(grid: Grid, address: str, raw_value: str) -> Grid:
    """Set one cell's raw text and recalculate the whole grid."""
    return recalculate_grid(set_raw_value(grid, address, raw_value))


def autosum_formula(address: str) -> str | None:
    """SUM of up to five cells above *address*, stopping below the header row.

    Returns None when there is nothing above to sum.
    """
    row, col = decode_address(address)
    row_number = row + 1
    start = max(2, row_number - 5)
    end = row_number - 1
    if start > end:
        return None
    letters = column_letter(col)
    return f"=SUM({letters}{start}:{letters}{end})"
