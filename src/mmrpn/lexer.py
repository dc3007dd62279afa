from collections import namedtuple
from enum import Enum
from functools import reduce
import operator

import regex

from .util import LexError


class TokenKind(Enum):
    EOF = 'EOF'
    NUMBER = 'NUMBER'
    COMPLEX = 'COMPLEX'
    STRING = 'STRING'
    MATRIX_FILE = 'MATRIX_FILE'
    MATRIX_INLINE_REAL = 'MATRIX_INLINE_REAL'
    MATRIX_INLINE_COMPLEX = 'MATRIX_INLINE_COMPLEX'
    MATRIX_INLINE_MIXED = 'MATRIX_INLINE_MIXED'
    IDENTIFIER = 'IDENTIFIER'
    FUNCTION = 'FUNCTION'
    PLUS = 'PLUS'
    MINUS = 'MINUS'
    STAR = 'STAR'
    SLASH = 'SLASH'
    CARET = 'CARET'
    DOT_STAR = 'DOT_STAR'
    DOT_SLASH = 'DOT_SLASH'
    DOT_CARET = 'DOT_CARET'
    BRA = 'BRA'
    KET = 'KET'
    VERTICAL = 'VERTICAL'
    COLON = 'COLON'
    SEMICOLON = 'SEMICOLON'
    UNKNOWN = 'UNKNOWN'


Token = namedtuple('Token', 'kind text')

# Literal kinds, pushed rather than run
LITERALS = frozenset({
    TokenKind.NUMBER,
    TokenKind.COMPLEX,
    TokenKind.STRING,
    TokenKind.MATRIX_FILE,
    TokenKind.MATRIX_INLINE_REAL,
    TokenKind.MATRIX_INLINE_COMPLEX,
    TokenKind.MATRIX_INLINE_MIXED,
})


class Lexer:
    '''
    Lexer for the calculator's token grammar.

    Holds no state between calls besides the set of builtin names used to
    tell FUNCTION from IDENTIFIER.
    '''

    MAX_TOKEN_LEN = 4096

    # Number: 12, -12.5, 1.2e-3, .9E3, +.3, 12. (notice trailing dot)
    # Atomic, so that repetitions never split 12 into 1 and 2.
    NUMBER = r'''
              (?>
                  [+-]?
                  (?:
                      \d+
                      (?:
                          \.
                          \d*
                      )?
                  |
                      \.
                      \d+
                  )
                  (?:
                      [eE]
                      [+-]?
                      \d+
                  )?
              )
              '''
    # (re,im); whitespace tolerated inside the parentheses
    COMPLEX = r'''
               \(
               \s*
               (?<re>{NUMBER})
               \s*
               ,
               \s*
               (?<im>{NUMBER})
               \s*
               \)
               '''.format(NUMBER=NUMBER)
    # Element of an inline matrix. No named groups, it repeats.
    ELEMENT = r'''
               (?:
                   \(
                   \s*
                   {NUMBER}
                   \s*
                   ,
                   \s*
                   {NUMBER}
                   \s*
                   \)
               |
                   {NUMBER}
               )
               '''.format(NUMBER=NUMBER)
    # Looks like [<number>, : the file form, whatever follows
    FILE_LOOKAHEAD = r'''
                      \[
                      \s*
                      [+-]?
                      \.?
                      \d
                      [\d.eE+-]*
                      \s*
                      ,
                      '''
    # [rows,cols,"filename"]
    MATRIX_FILE = r'''
                   \[
                   \s*
                   (?<rows>{NUMBER})
                   \s*
                   ,
                   \s*
                   (?<cols>{NUMBER})
                   \s*
                   ,
                   \s*
                   "
                   (?<file>[^"]*)
                   "
                   \s*
                   \]
                   '''.format(NUMBER=NUMBER)
    # J-style [rows cols $ v1 v2 ...]
    MATRIX_INLINE = r'''
                     \[
                     \s*
                     (?<rows>{NUMBER})
                     \s+
                     (?<cols>{NUMBER})
                     \s*
                     \$
                     (?:
                         \s*
                         (?<element>{ELEMENT})
                     )*+
                     \s*
                     \]
                     '''.format(NUMBER=NUMBER, ELEMENT=ELEMENT)
    STRING = r'''
              "
              (?<string>[^"]*)
              "?
              '''
    IDENTIFIER = r'[A-Za-z_][A-Za-z0-9_]*'
    SPACE = r'\s*'

    # Element-wise operators, before the single characters
    DOUBLES = {
        '.*': TokenKind.DOT_STAR,
        './': TokenKind.DOT_SLASH,
        '.^': TokenKind.DOT_CARET,
    }
    SINGLES = {
        '+': TokenKind.PLUS,
        '-': TokenKind.MINUS,
        '*': TokenKind.STAR,
        '/': TokenKind.SLASH,
        '^': TokenKind.CARET,
        '<': TokenKind.BRA,
        '>': TokenKind.KET,
        '|': TokenKind.VERTICAL,
        ':': TokenKind.COLON,
        ';': TokenKind.SEMICOLON,
        # Quote, as in the "'" word
        "'": TokenKind.FUNCTION,
    }

    # Default regex flags for matching lexemes
    FLAGS = reduce(operator.__or__,
                   {regex.DOTALL,
                    regex.VERSION1,
                    regex.VERBOSE},
                   0)

    def __init__(self, names=None):
        '''
        :param names: Builtin names, lexed as FUNCTION. Defaults to every
                      word a Machine knows.
        '''
        if names is None:
            from .machine import Machine
            names = Machine.NAMESPACE
        self.names = frozenset(names)
        flags = type(self).FLAGS
        self._number = regex.compile(type(self).NUMBER, flags)
        self._complex = regex.compile(type(self).COMPLEX, flags)
        self._file_lookahead = regex.compile(type(self).FILE_LOOKAHEAD, flags)
        self._matrix_file = regex.compile(type(self).MATRIX_FILE, flags)
        self._matrix_inline = regex.compile(type(self).MATRIX_INLINE, flags)
        self._string = regex.compile(type(self).STRING, flags)
        self._identifier = regex.compile(type(self).IDENTIFIER, flags)
        self._space = regex.compile(type(self).SPACE, flags)

    def _token(self, kind, text):
        if len(text) > type(self).MAX_TOKEN_LEN:
            raise LexError('Token too long ({} > {} characters): {}...'.format(
                len(text), type(self).MAX_TOKEN_LEN, text[:32]))
        return Token(kind, text)

    def next_token(self, text, position=0):
        '''
        Lex one token starting at position.

        Returns the token and the position just past it. At end of input,
        returns an EOF token and the same position.
        '''
        position = self._space.match(text, position).end()
        if position >= len(text):
            return Token(TokenKind.EOF, '<EOF>'), position

        c = text[position]

        match = self._number.match(text, position)
        if match:
            return (self._token(TokenKind.NUMBER, match.group()),
                    match.end())

        if c == '(':
            match = self._complex.match(text, position)
            if match is None:
                return Token(TokenKind.UNKNOWN, '('), position + 1
            return (self._token(TokenKind.COMPLEX,
                                '({},{})'.format(match.group('re'),
                                                 match.group('im'))),
                    match.end())

        if c == '[':
            return self._matrix(text, position)

        match = self._identifier.match(text, position)
        if match:
            name = match.group()
            kind = (TokenKind.FUNCTION
                    if name in self.names
                    else TokenKind.IDENTIFIER)
            return self._token(kind, name), match.end()

        if c == '"':
            match = self._string.match(text, position)
            return (self._token(TokenKind.STRING, match.group('string')),
                    match.end())

        double = text[position:position + 2]
        if double in type(self).DOUBLES:
            return Token(type(self).DOUBLES[double], double), position + 2

        if c in type(self).SINGLES:
            return Token(type(self).SINGLES[c], c), position + 1

        return Token(TokenKind.UNKNOWN, c), position + 1

    def _matrix(self, text, position):
        '''
        Lex either bracketed matrix form; UNKNOWN "[" if neither matches.
        '''
        if self._file_lookahead.match(text, position):
            match = self._matrix_file.match(text, position)
            if match is None:
                return Token(TokenKind.UNKNOWN, '['), position + 1
            return (self._token(TokenKind.MATRIX_FILE,
                                '[{},{},"{}"]'.format(match.group('rows'),
                                                      match.group('cols'),
                                                      match.group('file'))),
                    match.end())

        match = self._matrix_inline.match(text, position)
        if match is None:
            return Token(TokenKind.UNKNOWN, '['), position + 1
        elements = [regex.sub(r'\s+', '', element)
                    for element
                    in match.captures('element')]
        has_complex = any(element.startswith('(') for element in elements)
        has_real = any(not element.startswith('(') for element in elements)
        if has_complex and has_real:
            kind = TokenKind.MATRIX_INLINE_MIXED
        elif has_complex:
            kind = TokenKind.MATRIX_INLINE_COMPLEX
        else:
            kind = TokenKind.MATRIX_INLINE_REAL
        body = ' '.join([match.group('rows'), match.group('cols'), '$']
                        + elements)
        return self._token(kind, body), match.end()

    def lex(self, line):
        '''
        Take a line and yield all tokens, up to but excluding EOF.

        Malformed input comes out as UNKNOWN tokens; it is up to the caller to
        complain.
        '''
        position = 0
        while True:
            token, position = self.next_token(line, position)
            if token.kind is TokenKind.EOF:
                return
            yield token


def parse_number(text):
    return float(text)


def parse_complex(text):
    '''
    Parse a normalised "(re,im)" literal.
    '''
    real, imag = text.strip('()').split(',')
    return complex(float(real), float(imag))


def parse_matrix(text):
    '''
    Split a normalised "rows cols $ v1 v2 ..." literal.

    Returns rows, cols and the element values (float or complex).
    '''
    head, _, body = text.partition('$')
    rows, cols = head.split()
    values = [parse_complex(element) if element.startswith('(')
              else parse_number(element)
              for element
              in body.split()]
    return rows, cols, values


def parse_matrix_file(text):
    '''
    Split a normalised '[rows,cols,"file"]' literal.
    '''
    rows, cols, filename = text[1:-1].split(',', 2)
    return rows, cols, filename.strip('"')
