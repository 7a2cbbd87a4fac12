"""Polynomial wire grammar shared with the elimination service.

Grammar::

    poly   := term (("+"|"-") term)*
    term   := factor ("*" factor)*
    factor := ("-"|"+") factor | power
    power  := atom ("^" INT)?
    atom   := INT | NAME | "(" poly ")"

``**`` is read as ``^`` so Python-flavoured engine output parses too.  Printing
is canonical: expanded, integer coefficients, monomials in lex order of the
sorted generators.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import sympy

from .errors import PolynomialSyntaxError

Token = Tuple[str, str, int]  # (type, value, col)

SYMBOLS = {
    '+': 'PLUS',
    '-': 'MINUS',
    '*': 'STAR',
    '^': 'CARET',
    '(': 'LPAREN',
    ')': 'RPAREN',
}

WS = ' \t\r\n'

_name_re = re.compile(r'[A-Za-z][A-Za-z0-9_]*')
_int_re = re.compile(r'\d+')


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        col = i + 1
        if ch in WS:
            i += 1
            continue
        if text.startswith('**', i):
            tokens.append(('CARET', '**', col))
            i += 2
            continue
        m = _int_re.match(text, i)
        if m:
            tokens.append(('INT', m.group(0), col))
            i = m.end()
            continue
        m = _name_re.match(text, i)
        if m:
            tokens.append(('NAME', m.group(0), col))
            i = m.end()
            continue
        if ch in SYMBOLS:
            tokens.append((SYMBOLS[ch], ch, col))
            i += 1
            continue
        raise PolynomialSyntaxError(f'[col {col}] unexpected character: {ch!r}')
    return tokens


class Cursor:
    def __init__(self, tokens: List[Token]):
        self.toks = tokens
        self.i = 0

    def peek(self) -> Optional[Token]:
        return self.toks[self.i] if self.i < len(self.toks) else None

    def match(self, *types: str) -> Optional[Token]:
        t = self.peek()
        if t and t[0] in types:
            self.i += 1
            return t
        return None

    def expect(self, *types: str) -> Token:
        t = self.peek()
        if t and t[0] in types:
            self.i += 1
            return t
        want = '|'.join(types)
        if t:
            raise PolynomialSyntaxError(f'[col {t[2]}] expected {want}, got {t[0]}')
        raise PolynomialSyntaxError(f'unexpected end of input: expected {want}')


class _Parser:
    def __init__(self, cur: Cursor, symbols: Dict[str, sympy.Symbol]):
        self.cur = cur
        self.symbols = symbols

    def symbol(self, name: str) -> sympy.Symbol:
        sym = self.symbols.get(name)
        if sym is None:
            sym = sympy.Symbol(name)
            self.symbols[name] = sym
        return sym

    def poly(self) -> sympy.Expr:
        value = self.term()
        while True:
            if self.cur.match('PLUS'):
                value = value + self.term()
            elif self.cur.match('MINUS'):
                value = value - self.term()
            else:
                return value

    def term(self) -> sympy.Expr:
        value = self.factor()
        while self.cur.match('STAR'):
            value = value * self.factor()
        return value

    def factor(self) -> sympy.Expr:
        if self.cur.match('MINUS'):
            return -self.factor()
        if self.cur.match('PLUS'):
            return self.factor()
        return self.power()

    def power(self) -> sympy.Expr:
        base = self.atom()
        if self.cur.match('CARET'):
            exp = self.cur.expect('INT')
            return base ** int(exp[1])
        return base

    def atom(self) -> sympy.Expr:
        t = self.cur.expect('INT', 'NAME', 'LPAREN')
        if t[0] == 'INT':
            return sympy.Integer(int(t[1]))
        if t[0] == 'NAME':
            return self.symbol(t[1])
        inner = self.poly()
        self.cur.expect('RPAREN')
        return inner


def parse_polynomial(text: str, symbols: Optional[Dict[str, sympy.Symbol]] = None) -> sympy.Expr:
    """Parse ``text`` into a sympy expression.

    ``symbols`` maps names to existing sympy symbols so that parsed
    expressions share symbols with the caller; unknown names are added to it.
    """

    cur = Cursor(tokenize(text))
    if cur.peek() is None:
        raise PolynomialSyntaxError('empty polynomial')
    expr = _Parser(cur, symbols if symbols is not None else {}).poly()
    leftover = cur.peek()
    if leftover is not None:
        raise PolynomialSyntaxError(f'[col {leftover[2]}] unexpected {leftover[0]} after polynomial')
    return expr


def parse_polynomials(
    texts: Iterable[str], symbols: Optional[Dict[str, sympy.Symbol]] = None
) -> List[sympy.Expr]:
    table: Dict[str, sympy.Symbol] = symbols if symbols is not None else {}
    return [parse_polynomial(text, table) for text in texts]


def _monomial_str(gens: Sequence[sympy.Symbol], exps: Sequence[int]) -> str:
    parts = []
    for gen, exp in zip(gens, exps):
        if exp == 0:
            continue
        parts.append(gen.name if exp == 1 else f"{gen.name}^{exp}")
    return "*".join(parts)


def format_polynomial(expr: sympy.Expr, gens: Optional[Sequence[sympy.Symbol]] = None) -> str:
    """Print ``expr`` in canonical wire form.

    Raises ``ValueError`` when a coefficient is not an integer; the grammar
    has no division.
    """

    expr = sympy.expand(expr)
    if gens is None:
        gens = sorted(expr.free_symbols, key=lambda s: s.name)
    if not gens:
        if not expr.is_Integer:
            raise ValueError(f"non-integer constant {expr} in polynomial")
        return str(int(expr))

    poly = sympy.Poly(expr, *gens)
    pieces: List[str] = []
    for exps, coeff in poly.terms():
        if not coeff.is_Integer:
            raise ValueError(f"non-integer coefficient {coeff} in polynomial")
        c = int(coeff)
        mono = _monomial_str(gens, exps)
        magnitude = abs(c)
        if not mono:
            body = str(magnitude)
        elif magnitude == 1:
            body = mono
        else:
            body = f"{magnitude}*{mono}"
        if not pieces:
            pieces.append(f"-{body}" if c < 0 else body)
        else:
            pieces.append(f"- {body}" if c < 0 else f"+ {body}")
    return " ".join(pieces) if pieces else "0"


__all__ = [
    "Cursor",
    "Token",
    "format_polynomial",
    "parse_polynomial",
    "parse_polynomials",
    "tokenize",
]
