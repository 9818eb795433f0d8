"""
Tokenizer for the BUGS model language.

Produces a flat list of Token(kind, value, line, column). Kinds:
    NAME, NUMBER, OP (one of the operator/punctuation strings), EOF

Names may contain dots and underscores (e.g. `tau.y`, `mu_0`), as in JAGS.
Comments start with `#` and run to the end of the line.
"""

import re
from collections import namedtuple

from ..error_handling import ModelSyntaxError


Token = namedtuple('Token', ['kind', 'value', 'line', 'column'])

# '<-' must come before the single-character operators
_TOKEN_RE = re.compile(r"""
    (?P<ws>[ \t\r\f]+)
  | (?P<newline>\n)
  | (?P<comment>\#[^\n]*)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<name>[A-Za-z][A-Za-z0-9._]*)
  | (?P<op><-|[~()\[\]{},;:+\-*/^=])
""", re.VERBOSE)


def tokenize(text: str):
    """
    Split model text into tokens.

    Args:
        text: BUGS model source

    Returns:
        List of Token, terminated by an EOF token

    Raises:
        ModelSyntaxError: On a character that cannot start any token
    """
    tokens = []
    line = 1
    line_start = 0
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ModelSyntaxError(f"Unexpected character {text[pos]!r}", line, pos - line_start + 1)
        kind = match.lastgroup
        value = match.group(kind)
        column = pos - line_start + 1
        if kind == 'newline':
            line += 1
            line_start = match.end()
        elif kind == 'number':
            tokens.append(Token('NUMBER', float(value), line, column))
        elif kind == 'name':
            tokens.append(Token('NAME', value, line, column))
        elif kind == 'op':
            tokens.append(Token('OP', value, line, column))
        pos = match.end()
    tokens.append(Token('EOF', None, line, pos - line_start + 1))
    return tokens
