'''
Evaluator and machine word tests
'''

import io
import logging

import numpy
import regex

from mmrpn.util import (InvalidLabel, LexError, RPNError, StackUnderflow,
                        TypeMismatch, UnknownWord)
from mmrpn.lexer import Token, TokenKind
from mmrpn.machine import Machine
from mmrpn.values import Complex, MatrixComplex, MatrixReal, Real, String

from pytest import approx, raises


def payloads(machine):
    return [value.unwrap() for value in machine.stack]


def test_arithmetic(machine):
    machine.evaluate_line('1 2 + 3 *')
    assert list(machine.stack) == [Real(9)]
    machine.evaluate_line('2 ^ 1 -')
    assert list(machine.stack) == [Real(80)]


def test_failing_builtin_leaves_stack(machine):
    machine.evaluate_line('1 0')
    with raises(RPNError, match='/: .*division by zero'):
        machine.evaluate_line('/')
    assert list(machine.stack) == [Real(1), Real(0)]


def test_type_mismatch_leaves_stack(machine):
    machine.evaluate_line('"a" 1')
    with raises(TypeMismatch):
        machine.evaluate_line('+')
    assert list(machine.stack) == [String('a'), Real(1)]


def test_underflow_leaves_stack(machine):
    machine.evaluate_line('1')
    with raises(StackUnderflow):
        machine.evaluate_line('swap')
    assert list(machine.stack) == [Real(1)]


def test_error_aborts_rest_of_line(machine):
    with raises(UnknownWord, match="Unknown word 'frob'"):
        machine.evaluate_line('1 frob 2')
    assert list(machine.stack) == [Real(1)]


def test_unknown_character(machine):
    with raises(LexError, match=regex.escape("Couldn't lex '@'")):
        machine.evaluate_line('@')


def test_real_to_complex_domain(machine):
    machine.evaluate_line('-1 sqrt')
    assert list(machine.stack) == [Complex(0, 1)]


def test_complex_words(machine):
    machine.evaluate_line('(3,4) abs (1,2) split_c 2 re2c')
    assert list(machine.stack) == [Real(5), Real(1), Real(2), Complex(2, 0)]


def test_constants(machine):
    machine.evaluate_line('pi e')
    assert payloads(machine) == [approx(numpy.pi), approx(numpy.e)]


def test_comparisons(machine):
    machine.evaluate_line('1 2 lt 1 2 gt 3 3 eq not')
    assert list(machine.stack) == [Real(1), Real(0), Real(0)]


def test_matrix_literals(machine):
    machine.evaluate_line('[2 2 $ 1 2 3 4] [1 2 $ (1,2) 3]')
    assert machine.stack[0] == MatrixReal([[1, 2], [3, 4]])
    assert machine.stack[1] == MatrixComplex([[1 + 2j, 3]])


def test_matrix_literal_count_mismatch(machine):
    with raises(LexError, match='Matrix element count mismatch'):
        machine.evaluate_line('[2 3 $ 1 2 3]')
    assert len(machine.stack) == 0


def test_matrix_file_literal(machine, tmp_path):
    path = tmp_path / 'm.txt'
    path.write_text('1 2\n3 4\n')
    machine.evaluate_line('[2,2,"{}"]'.format(path))
    assert list(machine.stack) == [MatrixReal([[1, 2], [3, 4]])]
    with raises(LexError, match='holds 4 values, expected 6'):
        machine.evaluate_line('[2,3,"{}"]'.format(path))


def test_matrix_products(machine):
    machine.evaluate_line('[2 2 $ 1 2 3 4] [2 2 $ 1 0 0 1] *')
    assert list(machine.stack) == [MatrixReal([[1, 2], [3, 4]])]
    machine.evaluate_line('2 ^')
    assert list(machine.stack) == [MatrixReal([[7, 10], [15, 22]])]


def test_elementwise(machine):
    machine.evaluate_line('[1 2 $ 1 2] [1 2 $ 3 4] .*')
    assert list(machine.stack) == [MatrixReal([[3, 8]])]


def test_shape_mismatch(machine):
    machine.evaluate_line('[1 2 $ 1 2] [2 1 $ 1 2]')
    with raises(RPNError, match='Shape mismatch'):
        machine.evaluate_line('+')
    assert len(machine.stack) == 2


def test_matrix_words(machine):
    machine.evaluate_line('[2 2 $ 1 2 3 4] det')
    assert machine.stack[0].value == approx(-2)
    machine.evaluate_line('clst 2 eye [2 3 $ 1 2 3 4 5 6] dim')
    assert list(machine.stack) == [MatrixReal(numpy.eye(2)), Real(2), Real(3)]
    machine.evaluate_line('clst [1 4 $ 1 2 3 4] 2 2 reshape tran')
    assert list(machine.stack) == [MatrixReal([[1, 3], [2, 4]])]


def test_singular_matrix(machine):
    machine.evaluate_line('[2 2 $ 1 1 1 1]')
    with raises(RPNError, match='minv'):
        machine.evaluate_line('minv')
    assert len(machine.stack) == 1


def test_strings(machine):
    machine.evaluate_line('"ab" "cd" scon s2u "hello" 1 3 substr 42 int2str')
    assert list(machine.stack) == [String('ABCD'), String('ell'),
                                   String('42')]
    machine.evaluate_line('clst "abc" slen "abc" srev')
    assert list(machine.stack) == [Real(3), String('cba')]


def test_substring_bounds(machine):
    machine.evaluate_line('"abc" 2 5')
    with raises(RPNError, match='out of bounds'):
        machine.evaluate_line('substr')
    assert len(machine.stack) == 3


def test_dup_is_deep(machine):
    machine.evaluate_line('[1 1 $ 5] dup')
    machine.stack[-1].value[0, 0] = 9
    assert machine.stack[0] == MatrixReal([[5]])


def test_shuffles(machine):
    machine.evaluate_line('1 2 swap')
    assert payloads(machine) == [2, 1]
    machine.evaluate_line('over')
    assert payloads(machine) == [2, 1, 2]
    machine.evaluate_line('nip')
    assert payloads(machine) == [2, 2]
    machine.evaluate_line('clst 1 2 tuck')
    assert payloads(machine) == [2, 1, 2]
    machine.evaluate_line('drop drop drop')
    assert len(machine.stack) == 0


def test_roll(machine):
    machine.evaluate_line('1 2 3 4 2 roll')
    assert payloads(machine) == [1, 3, 4, 2]
    machine.evaluate_line('0 roll')
    assert payloads(machine) == [1, 3, 4, 2]
    with raises(StackUnderflow):
        machine.evaluate_line('9 roll')
    assert payloads(machine) == [1, 3, 4, 2, 9]


def test_registers(machine):
    machine.evaluate_line('42 3 sto 3 rcl 3 rcl')
    assert payloads(machine) == [42, 42]
    with raises(RPNError, match='Register 7 is empty'):
        machine.evaluate_line('7 rcl')
    with raises(RPNError, match='No such register 100'):
        machine.evaluate_line('clst 1 100 sto')
    assert payloads(machine) == [1, 100]
    machine.evaluate_line('clst clregs')
    with raises(RPNError, match='Register 3 is empty'):
        machine.evaluate_line('3 rcl')


def test_counters(machine):
    machine.evaluate_line('5 0 set_ctr 0 ctr_inc 0 ctr_inc 1 ctr_dec')
    assert machine.counters[:2] == [7, -1]
    assert len(machine.stack) == 0
    machine.evaluate_line('0 clr_ctr')
    assert machine.counters[0] == 0
    with raises(RPNError, match='No such counter 32'):
        machine.evaluate_line('32 ctr_inc')


def test_machines_are_independent():
    a, b = Machine(), Machine()
    a.evaluate_line('1 0 set_ctr 2 1 sto : w 1 ;')
    assert b.counters[0] == 0
    assert b.registers[1] is None
    assert b.words == {}
    assert len(b.stack) == 0


def test_definitions(machine):
    machine.evaluate_line(': sq dup * ; 3 sq')
    assert payloads(machine) == [9]
    machine.evaluate_line(': quad sq sq ;')
    machine.evaluate_line('clst 2 quad')
    assert payloads(machine) == [16]
    assert machine.words == {'sq': 'dup *', 'quad': 'sq sq'}


def test_delword(machine):
    machine.evaluate_line(': one 1 ; "one" delword')
    with raises(UnknownWord):
        machine.evaluate_line('one')
    with raises(UnknownWord):
        machine.evaluate_line('"one" delword')
    machine.evaluate_line(': one 1 ; : two 2 ; clrwords')
    assert machine.words == {}


def test_bad_definitions(machine):
    with raises(RPNError, match="Cannot define 'sin'"):
        machine.evaluate_line(': sin 1 ;')
    with raises(RPNError, match='lacks ;'):
        machine.evaluate_line(': foo 1')
    with raises(RPNError, match='Nested definition'):
        machine.evaluate_line(': foo : bar ; ;')
    with raises(RPNError, match="';' without ':'"):
        machine.evaluate_line('1 ;')
    assert machine.words == {}


def test_runaway_recursion(machine):
    machine.evaluate_line(': loop loop ;')
    with raises(RPNError, match='nested too deep'):
        machine.evaluate_line('loop')
    assert machine._depth == 0


def test_self_running_program(machine, tmp_path, caplog):
    path = tmp_path / 'self.txt'
    path.write_text('"{}" run\n'.format(path))
    with caplog.at_level(logging.WARNING):
        machine.evaluate_line('"{}" run'.format(path))
    assert 'nested too deep' in caplog.text
    assert list(machine.stack) == [String(str(path))]
    assert machine._depth == 0


def test_self_batching_file(machine, tmp_path, caplog):
    path = tmp_path / 'self.txt'
    path.write_text('"{}" batch\n'.format(path))
    with caplog.at_level(logging.WARNING):
        machine.evaluate_line('"{}" batch'.format(path))
    assert 'nested too deep' in caplog.text
    assert list(machine.stack) == [String(str(path))]
    assert machine._depth == 0


def test_undo(machine):
    machine.interpret('1 2')
    machine.interpret('+')
    assert payloads(machine) == [3]
    machine.interpret('undo')
    assert payloads(machine) == [1, 2]


def test_undo_after_failed_line(machine):
    machine.interpret('1')
    with raises(UnknownWord):
        machine.interpret('2 frob')
    machine.interpret('undo')
    assert payloads(machine) == [1]


def test_nothing_to_undo(machine):
    with raises(RPNError, match='Nothing to undo'):
        machine.interpret('undo')


def test_printstack(machine):
    machine.evaluate_line('1 "s" [2 1 $ 1 2]')
    out = io.StringIO()
    machine.printstack(out)
    assert out.getvalue() == '3: 1\n2: "s"\n1: [ 1 ]\n   [ 2 ]\n'


def test_setprec(machine):
    machine.evaluate_line('3 setprec pi')
    assert machine.format_stack() == ['1: 3.14']
    with raises(RPNError, match='precision'):
        machine.evaluate_line('0 setprec')


def test_display_flag(machine, capsys):
    machine.evaluate_line('1')
    assert machine.consume_display() is False
    machine.evaluate_line('listfcns')
    assert machine.consume_display() is True
    assert machine.consume_display() is False
    assert 'swap' in capsys.readouterr().out.split()


def test_help(machine, capsys):
    machine.evaluate_line('"swap" help')
    assert 'x y -- y x' in capsys.readouterr().out
    assert len(machine.stack) == 0
    assert machine.consume_display()
    machine.evaluate_line(': sq dup * ; "sq" help')
    assert ': sq dup * ;' in capsys.readouterr().out


def test_help_string_words(machine, capsys):
    machine.evaluate_line('"substr" help')
    out = capsys.readouterr().out
    assert 's start len -- s_sub' in out
    assert 'length, not end' in out
    machine.evaluate_line('"int2str" help')
    out = capsys.readouterr().out
    assert 'n -- s' in out
    assert 'truncated toward zero' in out


def test_listwords(machine, capsys):
    machine.evaluate_line(': sq dup * ; listwords')
    assert capsys.readouterr().out == ': sq dup * ;\n'


def test_save_and_load(machine, tmp_path):
    path = tmp_path / 'stack.bin'
    machine.evaluate_line('1 (2,3) "s" [1 2 $ 1 2]')
    before = [value.copy() for value in machine.stack]
    machine.evaluate_line('"{}" savestack'.format(path))
    assert list(machine.stack) == before
    machine.evaluate_line('clst 99 "{}" loadstack'.format(path))
    assert list(machine.stack) == before


def test_batch(machine, tmp_path, caplog):
    path = tmp_path / 'batch.txt'
    path.write_text('1 2 +\nfrob\n3\n')
    with caplog.at_level(logging.WARNING):
        machine.evaluate_line('"{}" batch'.format(path))
    assert payloads(machine) == [3, 3]
    assert machine.consume_display()
    assert 'frob' in caplog.text


def test_run_word(machine, tmp_path):
    path = tmp_path / 'prog.txt'
    path.write_text('2\nGOSUB double\nEND\nLBL double\n2 *\nRTN\n')
    machine.evaluate_line('"{}" run'.format(path))
    assert payloads(machine) == [4]


def test_run_word_halts(machine, tmp_path):
    path = tmp_path / 'prog.txt'
    path.write_text('1\nGOTO nowhere\n2\n')
    with raises(InvalidLabel, match='halted'):
        machine.evaluate_line('"{}" run'.format(path))
    assert payloads(machine) == [1]


def test_evaluate_one_token(machine):
    machine.evaluate_one_token(Token(TokenKind.NUMBER, '2'))
    machine.feed(Token(TokenKind.STRING, 'x'))
    machine.feed(Token(TokenKind.FUNCTION, 'swap'))
    assert list(machine.stack) == [String('x'), Real(2)]
    with raises(LexError):
        machine.feed(Token(TokenKind.UNKNOWN, '@'))
    machine.feed(Token(TokenKind.EOF, '<EOF>'))
    assert len(machine.stack) == 2
