#!/usr/bin/env python3
"""
encoded_length.py - Symbolic byte-length algebra

Lengths of generated encodings are kept as text expressions such as "1+4*3"
or "2+N_SAMPLES*4" because array sizes are frequently C macros that are only
known to the compiler. This module adds, collapses and offsets those
expressions without ever needing the value of a symbol.

Expression grammar (whitespace ignored):
    expr   := term (('+' | '-') term)*
    term   := factor ('*' factor)*
    factor := integer | hex integer | '(' expr ')' | any other text

Usage:
    from encoded_length import EncodedLength, collapse_length_string

    collapse_length_string("1+4*3")          # "13"
    collapse_length_string("2+N*4+N*4")      # "2+8*N"
    subtract_one_from_length_string("2*N")   # "2*N-1"
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

_DECIMAL = re.compile(r'^\d+$')
_HEX = re.compile(r'^0[xX][0-9a-fA-F]+$')
_IDENTITY_FACTOR = re.compile(r'(?<![\w.)])1\*')


def _number(text: str) -> Optional[int]:
    if _DECIMAL.match(text):
        return int(text)
    if _HEX.match(text):
        return int(text, 16)
    return None


def _split_top_level(expr: str, separators: str) -> List[Tuple[str, str]]:
    """
    Split expr at separators that are not inside parentheses. Returns a list
    of (separator, piece) where the first separator is '' unless the
    expression starts with one.
    """
    pieces = []
    depth = 0
    current = ''
    sep = ''
    for ch in expr:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1

        if depth == 0 and ch in separators:
            if current or pieces or sep:
                pieces.append((sep, current))
            sep = ch
            current = ''
        else:
            current += ch

    pieces.append((sep, current))
    return pieces


def _strip_parentheses(factor: str) -> Optional[str]:
    """Return the inside of a fully parenthesized factor, else None."""
    if not (factor.startswith('(') and factor.endswith(')')):
        return None
    depth = 0
    for index, ch in enumerate(factor):
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
            if depth == 0 and index != len(factor) - 1:
                return None
    return factor[1:-1]


def _parse_term(term: str) -> Tuple[int, Tuple[str, ...]]:
    """Fold a product into (numeric coefficient, symbolic factors)."""
    coefficient = 1
    symbols = []
    for _, factor in _split_top_level(term, '*'):
        if not factor:
            continue

        value = _number(factor)
        if value is None:
            inner = _strip_parentheses(factor)
            if inner is not None:
                collapsed = collapse_length_string(inner)
                value = _number(collapsed)
                if value is None:
                    # A single product inside parentheses folds into this one
                    if len(_split_top_level(collapsed, '+-')) == 1 and not collapsed.startswith('-'):
                        inner_coefficient, inner_symbols = _parse_term(collapsed)
                        coefficient *= inner_coefficient
                        symbols.extend(inner_symbols)
                    else:
                        symbols.append('(' + collapsed + ')')
                    continue
            else:
                symbols.append(factor)
                continue

        coefficient *= value

    return coefficient, tuple(symbols)


def _format_term(coefficient: int, symbols: Tuple[str, ...]) -> str:
    product = '*'.join(symbols)
    magnitude = abs(coefficient)
    if magnitude != 1:
        product = f"{magnitude}*{product}"
    return product


def collapse_length_string(expr: str) -> str:
    """
    Simplify a length expression to a canonical minimal string: numeric
    terms are summed, numeric factors multiplied, and repeated symbolic
    products merged. An empty expression stays empty.
    """
    expr = expr.replace(' ', '')
    if not expr:
        return ''

    constant = 0
    symbolic: Dict[Tuple[str, ...], int] = {}

    for sep, term in _split_top_level(expr, '+-'):
        if not term:
            continue
        sign = -1 if sep == '-' else 1
        coefficient, symbols = _parse_term(term)
        if symbols:
            symbolic[symbols] = symbolic.get(symbols, 0) + sign * coefficient
        else:
            constant += sign * coefficient

    output = str(constant) if constant > 0 else ''
    for symbols, coefficient in symbolic.items():
        if coefficient == 0:
            continue
        text = _format_term(coefficient, symbols)
        if coefficient < 0:
            output += '-' + text
        elif output:
            output += '+' + text
        else:
            output = text

    if constant < 0:
        output += f"-{-constant}"

    return output or '0'


def subtract_one_from_length_string(expr: str) -> str:
    """Return the collapsed expression for expr - 1."""
    if not expr:
        return '-1'
    return collapse_length_string(expr + '-1')


def _protect(expr: str) -> str:
    """Parenthesize a sum so it can be used as a factor."""
    if len(_split_top_level(expr, '+-')) > 1:
        return '(' + expr + ')'
    return expr


def add_length_strings(total: str, length: str, multiplier: str = '') -> str:
    """Return total + length * multiplier, collapsed. Empty length adds nothing."""
    if not length:
        return total

    term = length
    if multiplier:
        term = f"{_protect(length)}*{_protect(multiplier)}"

    if total:
        return collapse_length_string(total + '+' + term)
    return collapse_length_string(term)


def markdown_length(expr: str) -> str:
    """
    Render a length for documentation: collapsed, identity "1*" factors
    removed and multiplication shown as a times glyph.
    """
    text = collapse_length_string(expr) if expr else ''
    return _IDENTITY_FACTOR.sub('', text).replace('*', '&times;')


def markdown_cell(text: str) -> str:
    """Same glyph treatment as markdown_length for text that is not collapsed."""
    return _IDENTITY_FACTOR.sub('', text).replace('*', '&times;')


@dataclass
class EncodedLength:
    """
    Minimum, maximum and non-default encoded lengths of an encodable.

    The minimum excludes anything that may be absent (variable arrays,
    dependent fields, default fields). The non-default length only excludes
    default fields, so when it differs from the minimum a decoder must check
    the actual size before decoding the default tail.
    """
    min_encoded_length: str = ''
    max_encoded_length: str = ''
    non_default_encoded_length: str = ''

    def clear(self) -> None:
        self.min_encoded_length = ''
        self.max_encoded_length = ''
        self.non_default_encoded_length = ''

    def is_empty(self) -> bool:
        return not self.max_encoded_length

    def add_to_length(self, other: 'EncodedLength', array: str = '', variable_array: bool = False,
                      depends_on: bool = False, is_default: bool = False) -> None:
        """Fold another length into this one, repeated array times."""
        self.max_encoded_length = add_length_strings(
            self.max_encoded_length, other.max_encoded_length, array)

        if not (variable_array or depends_on or is_default):
            self.min_encoded_length = add_length_strings(
                self.min_encoded_length, other.min_encoded_length, array)

        if not is_default:
            self.non_default_encoded_length = add_length_strings(
                self.non_default_encoded_length, other.non_default_encoded_length, array)

    @classmethod
    def fixed(cls, length: str) -> 'EncodedLength':
        return cls(length, length, length)
