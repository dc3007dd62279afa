'''
Matrix-capable RPN calculator.

Reals, complex numbers, strings and real or complex matrices share one
stack. Besides the usual arithmetic and stack shuffling there are
element-wise matrix operators, counters and registers, user-defined words
(: name body ;), and stored programs with labels, subroutines and
conditional skips, in the style of the HP-41.

Stacks can be saved to and loaded from a small binary file format, see
mmrpn.stackio.
'''

from .cli import CLI
from .lexer import Lexer
from .machine import Machine
from .program import Program, load_program, load_program_file, run_program
from .stack import Stack
from .stackio import load_stack_from_file, save_stack_to_file


__all__ = ('Machine', 'Lexer', 'CLI', 'Stack', 'Program', 'load_program',
           'load_program_file', 'run_program', 'load_stack_from_file',
           'save_stack_to_file')
