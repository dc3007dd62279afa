'''
Stored programs, HP-41 style.

A program is a text file with one instruction per line:

    LBL <name>      label, resolved when the program is loaded
    GOTO <name>     jump to a label
    GOSUB <name>    call a label; RTN comes back to the next line
    RTN             return from GOSUB
    END             stop
    <...?...>       test: run the next line if true, skip it if false
    <anything else> evaluated like a line typed at the prompt

Skipping exactly one line is the only conditional; longer branches are a test
followed by a GOTO.
'''

from collections import namedtuple
from enum import Enum
import logging
import math
import operator

from .util import (InvalidLabel, ProgramLoadError, ReturnStackUnderflow,
                   RPNError, StackOverflow, StorageError)
from .values import Real


logger = logging.getLogger(__name__)


class Op(Enum):
    WORD = 'WORD'
    LABEL = 'LBL'
    GOTO = 'GOTO'
    GOSUB = 'GOSUB'
    RTN = 'RTN'
    TEST = 'TEST'
    END = 'END'


Instruction = namedtuple('Instruction', 'op arg')


def _top(relation):
    '''
    Compare the top of the stack with zero.
    '''
    def predicate(machine):
        stack = machine.stack
        if not len(stack) or not isinstance(stack[-1], Real):
            return False
        return relation(stack[-1].value, 0.0)
    return predicate


def _pair(relation):
    '''
    Compare the second element with the top one.
    '''
    def predicate(machine):
        stack = machine.stack
        if len(stack) < 2:
            return False
        x, y = stack[-2], stack[-1]
        if not (isinstance(x, Real) and isinstance(y, Real)):
            return False
        return relation(x.value, y.value)
    return predicate


def _counter(relation):
    '''
    Pop a counter index and compare that counter with zero.

    A bad index is false, never an error; a real index is popped either way.
    '''
    def predicate(machine):
        stack = machine.stack
        if not len(stack) or not isinstance(stack[-1], Real):
            return False
        index = stack.pop().value
        if not math.isfinite(index):
            return False
        index = int(index)
        if not 0 <= index < len(machine.counters):
            return False
        return relation(machine.counters[index], 0)
    return predicate


PREDICATES = {
    'top_eq0?': _top(operator.__eq__),
    'top_neq0?': _top(operator.__ne__),
    'top_gt0?': _top(operator.__gt__),
    'top_lt0?': _top(operator.__lt__),
    'top_gte0?': _top(operator.__ge__),
    'top_lte0?': _top(operator.__le__),
    'top_eq?': _pair(operator.__eq__),
    'top_neq?': _pair(operator.__ne__),
    'top_gt?': _pair(operator.__gt__),
    'top_lt?': _pair(operator.__lt__),
    'top_gte?': _pair(operator.__ge__),
    'top_lte?': _pair(operator.__le__),
    'ctr_eq0?': _counter(operator.__eq__),
    'ctr_neq0?': _counter(operator.__ne__),
    'ctr_gt0?': _counter(operator.__gt__),
    'ctr_lt0?': _counter(operator.__lt__),
    'ctr_gte0?': _counter(operator.__ge__),
    'ctr_lte0?': _counter(operator.__le__),
}


class Program:
    '''
    Loaded program: instructions plus a label table. Immutable once built.
    '''

    MAX_INSTRUCTIONS = 1000
    MAX_LABELS = 100
    MAX_LABEL_LEN = 31

    def __init__(self, instructions=(), labels=None, name=None):
        self.instructions = tuple(instructions)
        self.labels = dict(labels or {})
        self.name = name

    def __len__(self):
        return len(self.instructions)

    def __getitem__(self, pc):
        return self.instructions[pc]

    def __iter__(self):
        return iter(self.instructions)

    def __repr__(self):
        return 'Program({!r}, {} instruction(s))'.format(
            self.name, len(self.instructions))

    @classmethod
    def parse(cls, text, name=None):
        '''
        Build a program from script text, in one pass.
        '''
        instructions = []
        labels = dict()
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            if line.startswith('LBL '):
                label = line[len('LBL '):].strip()
                cls._check_label(label, labels)
                labels[label] = len(instructions)
                instruction = Instruction(Op.LABEL, label)
            elif line.startswith('GOTO '):
                instruction = Instruction(Op.GOTO, line[len('GOTO '):].strip())
            elif line.startswith('GOSUB '):
                instruction = Instruction(Op.GOSUB,
                                          line[len('GOSUB '):].strip())
            elif line == 'RTN':
                instruction = Instruction(Op.RTN, None)
            elif line == 'END':
                instruction = Instruction(Op.END, None)
            elif '?' in line:
                instruction = Instruction(Op.TEST, line)
            else:
                instruction = Instruction(Op.WORD, line)

            if len(instructions) >= cls.MAX_INSTRUCTIONS:
                raise ProgramLoadError('Program too long (max {})'.format(
                    cls.MAX_INSTRUCTIONS))
            instructions.append(instruction)
        program = cls(instructions, labels, name=name)
        logger.debug('Loaded %r with %d label(s)', program, len(labels))
        return program

    @classmethod
    def _check_label(cls, label, labels):
        if not label:
            raise ProgramLoadError('Empty label name')
        if len(label) > cls.MAX_LABEL_LEN:
            raise ProgramLoadError('Label name too long (max {}): {}'.format(
                cls.MAX_LABEL_LEN, label))
        if label in labels:
            raise ProgramLoadError('Duplicate label: {}'.format(label))
        if len(labels) >= cls.MAX_LABELS:
            raise ProgramLoadError('Too many labels (max {})'.format(
                cls.MAX_LABELS))

    def resolve(self, label):
        '''
        Return the program counter of label.
        '''
        try:
            return self.labels[label]
        except KeyError:
            raise InvalidLabel('Invalid label: {}'.format(label)) from None

    def listing(self):
        '''
        Return the program as numbered lines of text.
        '''
        return '\n'.join('{:3d}: {:<6} {}'.format(pc, op.value,
                                                   '' if arg is None else arg)
                         .rstrip()
                         for pc, (op, arg)
                         in enumerate(self.instructions))


def load_program(text, name=None):
    return Program.parse(text, name=name)


def load_program_file(path):
    try:
        with open(path, encoding='utf-8') as fp:
            text = fp.read()
    except OSError as e:
        raise StorageError('Cannot read program {}: {}'.format(path, e)) from e
    return Program.parse(text, name=path)


class Runner:
    '''
    Runs a program against a machine's stack and counters.

    State is the program counter and the return-address stack; the machine
    is shared with whoever else drives it.
    '''

    def __init__(self, machine, program):
        self.machine = machine
        self.program = program
        self.pc = 0
        self.returns = []
        self.halted = False

    def test(self, name):
        '''
        Evaluate a named predicate. Unknown names are false.
        '''
        predicate = PREDICATES.get(name)
        if predicate is None:
            logger.warning('Unknown condition: %s', name)
            return False
        return predicate(self.machine)

    def step(self):
        '''
        Execute one instruction. Return False once halted.

        Raises InvalidLabel, ReturnStackUnderflow or StackOverflow (return
        stack) and halts. Errors from evaluated lines are logged, and the
        program goes on with the next line.
        '''
        if self.halted:
            return False
        if self.pc >= len(self.program):
            # Implicit END
            self.halted = True
            return False

        op, arg = self.program[self.pc]
        try:
            if op is Op.WORD:
                self._word(arg)
                self.pc += 1
            elif op is Op.LABEL:
                self.pc += 1
            elif op is Op.GOTO:
                self.pc = self.program.resolve(arg)
            elif op is Op.GOSUB:
                target = self.program.resolve(arg)
                if len(self.returns) >= len(self.program):
                    raise StackOverflow('Return stack overflow')
                self.returns.append(self.pc + 1)
                self.pc = target
            elif op is Op.RTN:
                if not self.returns:
                    raise ReturnStackUnderflow('Return stack underflow')
                self.pc = self.returns.pop()
            elif op is Op.TEST:
                self.pc += 1 if self.test(arg) else 2
            elif op is Op.END:
                self.halted = True
        except RPNError:
            self.halted = True
            raise
        return not self.halted

    def _word(self, line):
        try:
            self.machine.evaluate_line(line)
        except RPNError as e:
            logger.warning('%d: %s: %s', self.pc, line, e.args[0])

    def run(self):
        while self.step():
            pass


def run_program(machine, program):
    '''
    Run program to completion.

    Returns None when it ends normally, or the error that aborted it.
    '''
    runner = Runner(machine, program)
    try:
        runner.run()
    except (InvalidLabel, ReturnStackUnderflow, StackOverflow) as e:
        logger.error('%s halted at %d: %s', program.name or 'program',
                     runner.pc, e.args[0])
        return e
    return None
