from contextlib import contextmanager
import logging

import numpy

from .lexer import (LITERALS, Lexer, TokenKind, parse_complex, parse_matrix,
                    parse_matrix_file, parse_number)
from .operations import (OPERATIONS, Operation, named, nonnegative_integer,
                         positive_integer)
from .program import load_program_file, run_program
from .stack import Stack
from .stackio import load_stack_from_file, save_stack_to_file
from .util import (LexError, RPNError, StorageError, UnknownWord,
                   wrap_user_errors)
from .values import (ANY, Complex, MatrixComplex, MatrixReal, Real, String,
                     wrap)


logger = logging.getLogger(__name__)


class Machine:
    '''
    Stack machine (RPN calculator) and its interpreter context.

    Owns the stack, the counter and register banks, user-defined words and
    the undo snapshot. Independent machines share nothing.
    '''

    COUNTERS = 32
    REGISTERS = 100
    # Nesting limit for user words, batch files and programs together
    MAX_DEPTH = 64

    def __init__(self, stack=None, verbose=None):
        '''
        Create empty stack machine.

        :param stack: Stack to drive, a fresh one by default.
        :param verbose: Log every token evaluated.
        '''
        self.stack = stack if stack is not None else Stack()
        self.counters = [0] * type(self).COUNTERS
        self.registers = [None] * type(self).REGISTERS
        self.words = dict()
        self.precision = None
        self.previous = None
        self.verbose = verbose
        self.suppress_display = False
        self.lexer = Lexer(names=type(self).NAMESPACE)
        self._depth = 0

    def evaluate_line(self, line):
        '''
        Lex and evaluate one line of input.

        The first error aborts the rest of the line, and is raised.
        '''
        position = 0
        while True:
            token, position = self.lexer.next_token(line, position)
            if token.kind is TokenKind.EOF:
                return
            if token.kind is TokenKind.COLON:
                position = self._define(line, position)
            else:
                self.evaluate_one_token(token)

    def evaluate_one_token(self, token):
        '''
        Push a literal, or run a word.
        '''
        if self.verbose:
            logger.debug('%s %r', token.kind.name, token.text)
        kind = token.kind
        if kind in LITERALS:
            self.stack.push(self.parse(token))
        elif kind is TokenKind.UNKNOWN:
            raise LexError("Couldn't lex {!r}".format(token.text))
        elif kind is TokenKind.COLON:
            raise RPNError("':' must start a definition in a line")
        elif kind is TokenKind.SEMICOLON:
            raise RPNError("';' without ':'")
        elif kind is not TokenKind.EOF:
            self.run_word(token.text)

    feed = evaluate_one_token

    def parse(self, token):
        '''
        Build the stack value for a literal token.
        '''
        kind = token.kind
        if kind is TokenKind.NUMBER:
            return Real(parse_number(token.text))
        elif kind is TokenKind.COMPLEX:
            return Complex(parse_complex(token.text))
        elif kind is TokenKind.STRING:
            return String(token.text)
        elif kind is TokenKind.MATRIX_FILE:
            rows, cols, filename = parse_matrix_file(token.text)
            return self._load_matrix(rows, cols, filename)
        rows, cols, values = parse_matrix(token.text)
        rows, cols = self._dimensions(rows, cols)
        if len(values) != rows * cols:
            raise LexError('Matrix element count mismatch: expected {}, '
                           'got {}'.format(rows * cols, len(values)))
        if kind is TokenKind.MATRIX_INLINE_REAL:
            return MatrixReal(numpy.array(values).reshape(rows, cols))
        return MatrixComplex(numpy.array(values, dtype=complex)
                             .reshape(rows, cols))

    @wrap_user_errors('Bad matrix dimensions {1} {2}')
    def _dimensions(self, rows, cols):
        return (positive_integer(float(rows), 'rows'),
                positive_integer(float(cols), 'cols'))

    def _load_matrix(self, rows, cols, filename):
        '''
        Read a whitespace-separated real matrix of known size.
        '''
        rows, cols = self._dimensions(rows, cols)
        try:
            data = numpy.loadtxt(filename, dtype=float, ndmin=1)
        except OSError as e:
            raise StorageError('Cannot read matrix {}: {}'.format(
                filename, e)) from e
        except ValueError as e:
            raise LexError('Bad matrix file {}: {}'.format(filename, e)) from e
        if data.size != rows * cols:
            raise LexError('Matrix file {} holds {} values, expected {}'
                           .format(filename, data.size, rows * cols))
        return MatrixReal(data.reshape(rows, cols))

    def run_word(self, name):
        '''
        Run a builtin, or else a user word.
        '''
        operation = type(self).NAMESPACE.get(name)
        if operation is not None:
            return self._apply(operation)
        body = self.words.get(name)
        if body is not None:
            return self._expand(name, body)
        raise UnknownWord('Unknown word {!r}'.format(name))

    def _apply(self, operation):
        '''
        Check the stack against the operation, run it, commit its results.

        Bound operations are Machine methods that do all of this themselves.
        '''
        if operation.bound:
            return operation.function(self)
        values = self.stack.require(*operation.accepts)
        results = self._call(operation, [value.unwrap() for value in values])
        self.stack.replace(operation.arity, *results)

    @wrap_user_errors('{1.name}')
    def _call(self, operation, args):
        '''
        Run a numeric operation; return its results as stack values.
        '''
        result = operation(*args)
        if result is None:
            return []
        if not isinstance(result, tuple):
            result = (result,)
        return [wrap(each) for each in result]

    @contextmanager
    def _nested(self, name):
        '''
        Count one level of user word, batch file or program nesting.
        '''
        if self._depth >= type(self).MAX_DEPTH:
            raise RPNError('{!r} nested too deep (max {})'.format(
                name, type(self).MAX_DEPTH))
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1

    def _expand(self, name, body):
        with self._nested(name):
            self.evaluate_line(body)

    def _define(self, line, position):
        '''
        Record ": name body ;" starting just after the colon.

        Returns the position after the semicolon.
        '''
        token, position = self.lexer.next_token(line, position)
        if token.kind is not TokenKind.IDENTIFIER:
            raise RPNError('Cannot define {!r}'.format(token.text))
        name = token.text
        start = position
        while True:
            token, end = self.lexer.next_token(line, position)
            if token.kind is TokenKind.EOF:
                raise RPNError('Definition of {!r} lacks ;'.format(name))
            if token.kind is TokenKind.COLON:
                raise RPNError('Nested definition in {!r}'.format(name))
            if token.kind is TokenKind.SEMICOLON:
                break
            position = end
        self.words[name] = line[start:end - 1].strip()
        logger.debug('Defined %s as %r', name, self.words[name])
        return end

    def checkpoint(self):
        '''
        Remember the stack, for undo.
        '''
        self.previous = [value.copy() for value in self.stack]

    def interpret(self, line):
        '''
        Evaluate a line typed by the user: checkpoint for undo first, unless
        the line is itself an undo.
        '''
        if line.strip() != 'undo':
            self.checkpoint()
        self.evaluate_line(line)

    def consume_display(self):
        '''
        Return and reset the suppress-display flag.
        '''
        suppress, self.suppress_display = self.suppress_display, False
        return suppress

    def format_stack(self):
        '''
        Return the stack as lines, top of the stack last, with levels.
        '''
        lines = []
        for level, value in zip(range(len(self.stack), 0, -1), self.stack):
            text = value.format(self.precision).splitlines()
            lines.append('{}: {}'.format(level, text[0]))
            indent = ' ' * (len(str(level)) + 2)
            lines.extend(indent + rest for rest in text[1:])
        return lines

    def printstack(self, file=None):
        for line in self.format_stack():
            print(line, file=file)

    # Stack words

    def drop(self):
        '''
        Discard the top of the stack.
        '''
        self.stack.pop()

    def dup(self):
        '''
        Duplicate the top of the stack.
        '''
        top, = self.stack.peek()
        self.stack.push(top.copy())

    def swap(self):
        '''
        Swap the two elements at the top of the stack.
        '''
        x, y = self.stack.peek(2)
        self.stack.replace(2, y, x)

    def over(self):
        '''
        Copy the second element to the top.
        '''
        x, _ = self.stack.peek(2)
        self.stack.push(x.copy())

    def tuck(self):
        '''
        Copy the top element below the second.
        '''
        x, y = self.stack.peek(2)
        self.stack.replace(2, y, x, y.copy())

    def nip(self):
        '''
        Discard the second element.
        '''
        _, y = self.stack.peek(2)
        self.stack.replace(2, y)

    def roll(self):
        '''
        Roll the nth element (0 is the top, not counting n) to the top.
        '''
        n, = self.stack.require(Real)
        depth = self._call_checked(nonnegative_integer, n.value, 'depth')
        values = self.stack.peek(depth + 2)[:-1]
        self.stack.replace(depth + 2, *(values[1:] + values[:1]))

    def clst(self):
        '''
        Clear everything from the stack.
        '''
        self.stack.clear()

    def undo(self):
        '''
        Restore the stack as it was before the last line.
        '''
        if self.previous is None:
            raise RPNError('Nothing to undo')
        self.stack.restore(self.previous)

    # Registers and counters

    def _slot(self, value, bank, what):
        index = self._call_checked(nonnegative_integer, value.value, what)
        if index >= len(bank):
            raise RPNError('No such {} {} (0-{})'.format(what, index,
                                                         len(bank) - 1))
        return index

    @wrap_user_errors('Bad {3}')
    def _call_checked(self, f, x, what):
        return f(x, what)

    def sto(self):
        '''
        Store a value into register n.
        '''
        value, n = self.stack.require(ANY, Real)
        index = self._slot(n, self.registers, 'register')
        self.registers[index] = value.copy()
        self.stack.replace(2)

    def rcl(self):
        '''
        Recall the value in register n.
        '''
        n, = self.stack.require(Real)
        index = self._slot(n, self.registers, 'register')
        value = self.registers[index]
        if value is None:
            raise RPNError('Register {} is empty'.format(index))
        self.stack.replace(1, value.copy())

    def clregs(self):
        '''
        Empty every register.
        '''
        self.registers = [None] * type(self).REGISTERS

    def set_ctr(self):
        '''
        Set counter n to value, truncated to an integer.
        '''
        value, n = self.stack.require(Real, Real)
        index = self._slot(n, self.counters, 'counter')
        self.counters[index] = self._truncate(value.value)
        self.stack.replace(2)

    @wrap_user_errors('Bad counter value {1}')
    def _truncate(self, x):
        return int(x)

    def _counter_step(self, step):
        n, = self.stack.require(Real)
        index = self._slot(n, self.counters, 'counter')
        self.counters[index] += step
        self.stack.replace(1)

    def clr_ctr(self):
        '''
        Set counter n to zero.
        '''
        n, = self.stack.require(Real)
        index = self._slot(n, self.counters, 'counter')
        self.counters[index] = 0
        self.stack.replace(1)

    def ctr_inc(self):
        '''
        Increment counter n.
        '''
        self._counter_step(1)

    def ctr_dec(self):
        '''
        Decrement counter n.
        '''
        self._counter_step(-1)

    # Files and programs

    def savestack(self):
        '''
        Save the stack below the file name to that file.
        '''
        filename, = self.stack.require(String)
        save_stack_to_file(self.stack[:-1], filename.value)
        self.stack.pop()

    def loadstack(self):
        '''
        Replace the stack with the one saved in a file.
        '''
        filename, = self.stack.require(String)
        load_stack_from_file(self.stack, filename.value)

    def batch(self):
        '''
        Evaluate every line of a file.
        '''
        filename, = self.stack.require(String)
        try:
            with open(filename.value, encoding='utf-8') as fp:
                lines = fp.read().splitlines()
        except OSError as e:
            raise StorageError('Cannot read batch {}: {}'.format(
                filename.value, e)) from e
        with self._nested(filename.value):
            self.stack.pop()
            for number, line in enumerate(lines, 1):
                try:
                    self.evaluate_line(line)
                except RPNError as e:
                    logger.warning('%s:%d: %s', filename.value, number,
                                   e.args[0])
        self.suppress_display = True

    def run(self):
        '''
        Load and run a program file.
        '''
        filename, = self.stack.require(String)
        program = load_program_file(filename.value)
        with self._nested(filename.value):
            self.stack.pop()
            error = run_program(self, program)
        if error is not None:
            raise type(error)('{} halted: {}'.format(filename.value,
                                                     error.args[0]))

    # Display and help

    def setprec(self):
        '''
        Set the number of significant digits shown.
        '''
        n, = self.stack.require(Real)
        self.precision = self._call_checked(positive_integer, n.value,
                                            'precision')
        self.stack.pop()

    def help(self):
        '''
        Show the stack effect of the named word, or list every word.
        '''
        if not len(self.stack) or not isinstance(self.stack[-1], String):
            return self.listfcns()
        name = self.stack[-1].value
        operation = type(self).NAMESPACE.get(name)
        if operation is None:
            if name in self.words:
                operation = Operation('--', None,
                                      doc=': {} {} ;'.format(
                                          name, self.words[name]))
            else:
                raise UnknownWord('No such word {!r}'.format(name))
        self.stack.pop()
        summary = operation.doc.splitlines()[0] if operation.doc else ''
        print('{}  ( {} )  {}'.format(name, operation.effect,
                                      summary).rstrip())
        self.suppress_display = True

    def listfcns(self):
        '''
        List every builtin word.
        '''
        print(*sorted(type(self).NAMESPACE))
        self.suppress_display = True

    def listwords(self):
        '''
        List user-defined words.
        '''
        for name, body in sorted(self.words.items()):
            print(': {} {} ;'.format(name, body))
        self.suppress_display = True

    def delword(self):
        '''
        Delete the named user word.
        '''
        name, = self.stack.require(String)
        if name.value not in self.words:
            raise UnknownWord('No such word {!r}'.format(name.value))
        del self.words[name.value]
        self.stack.pop()

    def clrwords(self):
        '''
        Delete every user word.
        '''
        self.words.clear()

    # Words needing the machine, by name
    FUNCTIONS = named({
        'drop': Operation('x --', drop, bound=True),
        'dup': Operation('x -- x x', dup, bound=True),
        'swap': Operation('x y -- y x', swap, bound=True),
        'over': Operation('x y -- x y x', over, bound=True),
        'tuck': Operation('x y -- y x y', tuck, bound=True),
        'nip': Operation('x y -- y', nip, bound=True),
        'roll': Operation('xn ... x0 n -- xn-1 ... x0 xn', roll, bound=True),
        'clst': Operation('--', clst, bound=True),
        'undo': Operation('--', undo, bound=True),
        'sto': Operation('x n --', sto, bound=True),
        'rcl': Operation('n -- x', rcl, bound=True),
        'clregs': Operation('--', clregs, bound=True),
        'set_ctr': Operation('value n --', set_ctr, bound=True),
        'clr_ctr': Operation('n --', clr_ctr, bound=True),
        'ctr_inc': Operation('n --', ctr_inc, bound=True),
        'ctr_dec': Operation('n --', ctr_dec, bound=True),
        'savestack': Operation('filename --', savestack, bound=True),
        'loadstack': Operation('filename -- ...', loadstack, bound=True),
        'batch': Operation('filename --', batch, bound=True),
        'run': Operation('filename --', run, bound=True),
        'setprec': Operation('n --', setprec, bound=True),
        'help': Operation('[name] --', help, bound=True),
        'listfcns': Operation('--', listfcns, bound=True),
        'listwords': Operation('--', listwords, bound=True),
        'delword': Operation('name --', delword, bound=True),
        'clrwords': Operation('--', clrwords, bound=True),
    })

    # Every builtin, numeric or not
    NAMESPACE = dict()
    for namespace in OPERATIONS, FUNCTIONS:
        NAMESPACE.update(namespace)
    del namespace


__all__ = 'Machine',
