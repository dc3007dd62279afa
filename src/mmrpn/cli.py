from os import isatty, path
import sys
from argparse import ArgumentParser, REMAINDER, OPTIONAL
import logging

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory

from .util import RPNError
from .machine import Machine
from .lexer import Lexer
from .program import load_program_file, run_program


class InteractiveInput:
    def __init__(self, prompt, history=None):
        self.prompt = prompt
        self.history = history

    def __iter__(self):
        try:
            session = PromptSession(message=self.prompt,
                                    vi_mode=True,
                                    enable_suspend=True,
                                    enable_open_in_editor=True,
                                    # Persistent
                                    history=self.history,
                                    prompt_continuation=' ' * len(self.prompt),
                                    # Certainly not! But be explicit.
                                    erase_when_done=False)
            while True:
                yield session.prompt()
        except EOFError:
            return


class CLI:
    '''
    Command line interface to the matrix RPN calculator.
    '''

    DEFAULT_PROMPT = '> '
    HISTORY_FILE = '~/.mmrpn_history'

    def dumper(self):
        '''
        Dump every token: kind, then text.
        '''
        lexer = Lexer()
        print('<kind>\t<repr(text)>')
        for line in self.args.expressions:
            try:
                for token in lexer.lex(line.rstrip('\n')):
                    print(token.kind.name, repr(token.text), sep='\t')
            except RPNError as e:
                print(e.args[0], file=sys.stderr)

    def executor(self):
        '''
        Run machine (RPN calculator), showing the stack after every line.
        '''
        machine = Machine(verbose=self.args.verbose)
        for line in self.args.expressions:
            line = line.rstrip('\n')
            if not line.strip():
                continue
            try:
                machine.interpret(line)
            # Abort entire rest of line, makes sense anyway
            except RPNError as e:
                print(e.args[0], file=sys.stderr)
            if not machine.consume_display():
                machine.printstack()

    def runner(self):
        '''
        Run a program file, then show the stack.
        '''
        machine = Machine(verbose=self.args.verbose)
        try:
            program = load_program_file(self.args.run)
        except RPNError as e:
            print(e.args[0], file=sys.stderr)
            sys.exit(1)
        if run_program(machine, program) is not None:
            sys.exit(1)
        machine.printstack()

    def lister(self):
        '''
        Print the instructions of a program file.
        '''
        try:
            program = load_program_file(self.args.list)
        except RPNError as e:
            print(e.args[0], file=sys.stderr)
            sys.exit(1)
        print(program.listing())

    def raw_grammar(self):
        '''
        Print current internally defined grammar.
        '''
        for name in ('NUMBER', 'COMPLEX', 'MATRIX_FILE', 'MATRIX_INLINE',
                     'STRING', 'IDENTIFIER'):
            print('{}:{}'.format(name, getattr(Lexer, name)))

    def _prompting_input(self):
        '''
        Return prompting stdin.__iter__ decorator...

        If either:
        - prompt explicitly specified.
        - both stdin/out are a tty
        '''
        if self.args.prompt or \
           isatty(sys.stdin.fileno()) and isatty(sys.stdout.fileno()):
            history = FileHistory(path.expanduser(self.HISTORY_FILE))
            return InteractiveInput(prompt=self.args.prompt or
                                    self.DEFAULT_PROMPT,
                                    history=history)
        else:
            return sys.stdin

    def __init__(self):
        '''
        Create ready to run CLI.

        Does not run or parse command line arguments.
        '''
        self.argument_parser = ArgumentParser(
            description='Matrix-capable RPN calculator')
        self.argument_parser.add_argument('-v', '--verbose',
                                          action='store_true')
        int_nonint_groups = self.argument_parser.add_mutually_exclusive_group()
        int_nonint_groups.add_argument('-e', '--expression',
                                       nargs=REMAINDER,
                                       dest='expressions')
        int_nonint_groups.add_argument('-p', '--prompt',
                                       nargs=OPTIONAL,
                                       const=self.DEFAULT_PROMPT)
        main_groups = self.argument_parser.add_mutually_exclusive_group()
        for short_, long_, action in [('-G', '--raw-grammar',
                                       self.raw_grammar),
                                      ('-D', '--dump', self.dumper)]:
            main_groups.add_argument(short_, long_,
                                     action='store_const',
                                     const=action,
                                     dest='action')
        main_groups.add_argument('-r', '--run', metavar='PROGRAM')
        main_groups.add_argument('-L', '--list', metavar='PROGRAM')
        self.argument_parser.set_defaults(action=self.executor,
                                          expressions=sys.stdin)

    def run(self, *, args=None):
        '''
        Run CLI, given these args, or previously passed CLI args.
        '''
        self.args = self.argument_parser.parse_args(args)
        logging.basicConfig(
            stream=sys.stderr,
            format='%(levelname)s:%(name)s:%(message)s',
            level=logging.DEBUG if self.args.verbose else logging.WARNING)
        if self.args.run is not None:
            self.args.action = self.runner
        elif self.args.list is not None:
            self.args.action = self.lister
        elif self.args.expressions is sys.stdin:
            self.args.expressions = self._prompting_input()
        try:
            self.args.action()
        except KeyboardInterrupt:
            sys.exit(1)


def main():
    CLI().run()
