'''
Lexer tests
'''

import regex

from mmrpn.util import LexError
from mmrpn.lexer import (Lexer, Token, TokenKind, parse_complex, parse_matrix,
                         parse_matrix_file, parse_number)

from pytest import raises


def kinds(line):
    return [token.kind for token in Lexer().lex(line)]


def texts(line):
    return [token.text for token in Lexer().lex(line)]


def test_numbers_and_operators():
    l = Lexer()
    assert list(l.lex('1 2 +')) == [Token(TokenKind.NUMBER, '1'),
                                    Token(TokenKind.NUMBER, '2'),
                                    Token(TokenKind.PLUS, '+')]


def test_number_forms():
    assert texts('12 -12.5 1.2e-3 .9E3 +.3 12.') == ['12', '-12.5', '1.2e-3',
                                                    '.9E3', '+.3', '12.']
    assert kinds('12 -12.5 1.2e-3 .9E3 +.3 12.') == [TokenKind.NUMBER] * 6


def test_number_values():
    for literal in ['0', '-7', '3.25', '1e10', '-2.5E-3', '.5', '+4.']:
        token, = Lexer().lex(literal)
        assert token.kind is TokenKind.NUMBER
        assert parse_number(token.text) == float(literal)


def test_sign_without_digit_is_operator():
    assert kinds('3 - 4 -') == [TokenKind.NUMBER,
                                TokenKind.MINUS,
                                TokenKind.NUMBER,
                                TokenKind.MINUS]


def test_eof_keeps_position():
    l = Lexer()
    assert l.next_token('   ', 0) == (Token(TokenKind.EOF, '<EOF>'), 3)
    assert l.next_token('', 0) == (Token(TokenKind.EOF, '<EOF>'), 0)


def test_complex():
    l = Lexer()
    token, position = l.next_token('( 1.5 , -2 ) x')
    assert token == Token(TokenKind.COMPLEX, '(1.5,-2)')
    assert position == len('( 1.5 , -2 )')
    assert parse_complex(token.text) == complex(1.5, -2)


def test_bad_complex_rewinds():
    l = Lexer()
    assert l.next_token('(1 2)') == (Token(TokenKind.UNKNOWN, '('), 1)


def test_inline_matrix_kinds():
    l = Lexer()
    token, _ = l.next_token('[2 2 $ 1 2 3 4]')
    assert token == Token(TokenKind.MATRIX_INLINE_REAL, '2 2 $ 1 2 3 4')

    token, _ = l.next_token('[1 2 $ (1, 2) (3,4)]')
    assert token == Token(TokenKind.MATRIX_INLINE_COMPLEX,
                          '1 2 $ (1,2) (3,4)')

    token, _ = l.next_token('[1 2 $ (1,2) 3]')
    assert token == Token(TokenKind.MATRIX_INLINE_MIXED, '1 2 $ (1,2) 3')

    assert kinds('[2 2 $ -1 2 5 1]') == [TokenKind.MATRIX_INLINE_REAL]
    assert kinds('[2 2 $ (1,2) 3 4 5]') == [TokenKind.MATRIX_INLINE_MIXED]


def test_parse_matrix():
    rows, cols, values = parse_matrix('1 2 $ (1,2) 3')
    assert (rows, cols) == ('1', '2')
    assert values == [complex(1, 2), 3.0]


def test_matrix_file():
    l = Lexer()
    token, position = l.next_token('[2, 3, "data/m.txt"] +')
    assert token == Token(TokenKind.MATRIX_FILE, '[2,3,"data/m.txt"]')
    assert position == len('[2, 3, "data/m.txt"]')
    assert parse_matrix_file(token.text) == ('2', '3', 'data/m.txt')


def test_bad_matrix_rewinds():
    l = Lexer()
    assert l.next_token('[foo]') == (Token(TokenKind.UNKNOWN, '['), 1)
    # File form selected by lookahead, but no file name
    assert l.next_token('[2,3]') == (Token(TokenKind.UNKNOWN, '['), 1)


def test_strings():
    assert list(Lexer().lex('"hello world" "x')) == [
        Token(TokenKind.STRING, 'hello world'),
        Token(TokenKind.STRING, 'x'),
    ]


def test_function_or_identifier():
    l = Lexer(names={'sin'})
    assert list(l.lex('sin sine')) == [Token(TokenKind.FUNCTION, 'sin'),
                                       Token(TokenKind.IDENTIFIER, 'sine')]


def test_default_names_are_machine_words():
    assert kinds('swap dup sqrt frob') == [TokenKind.FUNCTION,
                                           TokenKind.FUNCTION,
                                           TokenKind.FUNCTION,
                                           TokenKind.IDENTIFIER]


def test_punctuation():
    assert kinds(".* ./ .^ * / ^ < > | : ; '") == [
        TokenKind.DOT_STAR,
        TokenKind.DOT_SLASH,
        TokenKind.DOT_CARET,
        TokenKind.STAR,
        TokenKind.SLASH,
        TokenKind.CARET,
        TokenKind.BRA,
        TokenKind.KET,
        TokenKind.VERTICAL,
        TokenKind.COLON,
        TokenKind.SEMICOLON,
        TokenKind.FUNCTION,
    ]


def test_unknown_character():
    assert list(Lexer().lex('1 @')) == [Token(TokenKind.NUMBER, '1'),
                                        Token(TokenKind.UNKNOWN, '@')]


def test_token_too_long():
    l = Lexer()
    text = '"' + 'a' * (Lexer.MAX_TOKEN_LEN + 1) + '"'
    with raises(LexError, match=regex.escape('Token too long')):
        l.next_token(text)


def test_token_at_limit():
    l = Lexer()
    token, _ = l.next_token('"' + 'a' * Lexer.MAX_TOKEN_LEN + '"')
    assert len(token.text) == Lexer.MAX_TOKEN_LEN
