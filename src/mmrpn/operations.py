'''
Builtin numeric words.

Each entry pairs a stack effect ("inputs -- outputs", top of stack rightmost)
with the function doing the work. Functions take and return plain Python /
numpy objects; the machine unwraps the inputs, checks their types against
the entry and wraps the results. Functions return a tuple for several
results.

The numeric bodies are delegated to math, cmath and numpy.
'''

import cmath
import math
import operator

import numpy

from .util import RPNError, TypeMismatch
from .values import MATRICES, NUMERIC, SCALARS, MatrixReal, Real, String


class Operation:
    '''
    A builtin word: stack effect, types accepted, implementation.

    :param effect: Stack effect, e.g. "x y -- x^y". Arity is the number of
                   inputs named left of "--".
    :param function: Implementation, or an unbound Machine method if bound.
    :param accepts: Value type(s) accepted for every input, or a list with
                    one entry per input, bottom first.
    :param bound: Function is a Machine method that manages the stack itself.
    '''

    def __init__(self, effect, function, accepts=NUMERIC, bound=False,
                 doc=None):
        self.name = None
        self.effect = effect
        self.function = function
        self.bound = bound
        self.doc = doc or (function.__doc__ or '').strip()
        inputs = effect.split('--')[0].split()
        self.arity = len(inputs)
        if isinstance(accepts, list):
            if len(accepts) != self.arity:
                raise ValueError('{!r}: {} types for {} inputs'.format(
                    effect, len(accepts), self.arity))
            self.accepts = tuple(accepts)
        else:
            self.accepts = (accepts,) * self.arity

    def __call__(self, *args):
        return self.function(*args)

    def __repr__(self):
        return 'Operation({!r}, {!r})'.format(self.name, self.effect)


def named(table):
    for name, entry in table.items():
        entry.name = name
    return table


def _ismatrix(x):
    return isinstance(x, numpy.ndarray)


def positive_integer(x, what='count'):
    '''
    Positive integer from a real, e.g. a matrix dimension.
    '''
    if x != int(x) or x < 1:
        raise RPNError('{} must be a positive integer, got {}'.format(what, x))
    return int(x)


def nonnegative_integer(x, what='index'):
    if x != int(x) or x < 0:
        raise RPNError('{} must be a non-negative integer, got {}'.format(
            what, x))
    return int(x)


def _same_shape(x, y):
    if _ismatrix(x) and _ismatrix(y) and x.shape != y.shape:
        raise RPNError('Shape mismatch: {}x{} and {}x{}'.format(
            *(x.shape + y.shape)))


def _elementwise(f):
    '''
    Element-wise binary function, with matrices of equal shape only.
    '''
    def wrapped(x, y):
        _same_shape(x, y)
        return f(x, y)
    wrapped.__doc__ = f.__doc__
    return wrapped


def _unary(real, complex_, matrix):
    '''
    Pick the implementation by argument type.

    Reals falling outside the real function's domain (sqrt of a negative,
    say) go to the complex one.
    '''
    def function(x):
        if _ismatrix(x):
            return matrix(x)
        if isinstance(x, complex):
            return complex_(x)
        try:
            return real(x)
        except ValueError:
            return complex_(x)
    function.__doc__ = real.__doc__
    return function


def _nullary(constant):
    def function():
        return constant
    return function


def multiply(x, y):
    '''
    Product; the matrix product when both are matrices.
    '''
    if _ismatrix(x) and _ismatrix(y):
        return numpy.matmul(x, y)
    return x * y


def divide(x, y):
    '''
    Quotient; right division (x times the inverse of y) by a matrix.
    '''
    if _ismatrix(y):
        inverse = numpy.linalg.inv(y)
        return numpy.matmul(x, inverse) if _ismatrix(x) else x * inverse
    return x / y


def power(x, y):
    '''
    x to the y; integral powers of a square matrix.
    '''
    if _ismatrix(y):
        raise TypeMismatch('Exponent cannot be a matrix')
    if _ismatrix(x):
        if isinstance(y, complex) or y != int(y):
            raise RPNError('Matrix power must be an integer, got {}'.format(y))
        return numpy.linalg.matrix_power(x, int(y))
    return x ** y


def inverse(x):
    '''
    1/x, or the matrix inverse.
    '''
    if _ismatrix(x):
        return numpy.linalg.inv(x)
    return 1 / x


def adjoint(x):
    '''
    Conjugate transpose; conjugate of a scalar.
    '''
    if _ismatrix(x):
        return x.conj().T
    return x.conjugate()


def phase(x):
    if _ismatrix(x):
        return numpy.angle(x)
    return cmath.phase(x)


def split_complex(z):
    return z.real, z.imag


def to_complex(x):
    if _ismatrix(x):
        return x.astype(numpy.complex128)
    return complex(x)


def compare(relation):
    def function(x, y):
        return float(relation(x, y))
    return function


def logical_and(x, y):
    return float(bool(x) and bool(y))


def logical_or(x, y):
    return float(bool(x) or bool(y))


def logical_not(x):
    return float(not x)


def transpose(m):
    return m.T


def determinant(m):
    return numpy.linalg.det(m)


def identity(n):
    return numpy.eye(positive_integer(n, 'size'))


def ones(rows, cols):
    return numpy.ones((positive_integer(rows, 'rows'),
                       positive_integer(cols, 'cols')))


def zeroes(rows, cols):
    return numpy.zeros((positive_integer(rows, 'rows'),
                        positive_integer(cols, 'cols')))


def reshape(m, rows, cols):
    rows = positive_integer(rows, 'rows')
    cols = positive_integer(cols, 'cols')
    if rows * cols != m.size:
        raise RPNError('Cannot reshape {}x{} into {}x{}'.format(
            m.shape[0], m.shape[1], rows, cols))
    return m.reshape(rows, cols)


def dimensions(m):
    return float(m.shape[0]), float(m.shape[1])


def concatenate(s1, s2):
    return s1 + s2


def substring(s, start, length):
    '''
    Take length characters of s from 0-based start (length, not end).

    The slice must lie within the string.
    '''
    start = nonnegative_integer(start, 'start')
    length = nonnegative_integer(length, 'length')
    if start + length > len(s):
        raise RPNError('Substring [{}, {}) out of bounds for length {}'.format(
            start, start + length, len(s)))
    return s[start:start + length]


def int_to_string(n):
    '''
    Consume n and push its decimal text, truncated toward zero.
    '''
    return '{:d}'.format(int(n))


# Arithmetic and element-wise operators, by token text
BUILTINS = named({
    '+': Operation('x y -- x+y', _elementwise(operator.__add__)),
    '-': Operation('x y -- x-y', _elementwise(operator.__sub__)),
    '*': Operation('x y -- x*y', multiply),
    '/': Operation('x y -- x/y', divide),
    '^': Operation('x y -- x^y', power),
    '.*': Operation('x y -- x.*y', _elementwise(numpy.multiply)),
    './': Operation('x y -- x./y', _elementwise(numpy.true_divide)),
    '.^': Operation('x y -- x.^y', _elementwise(numpy.power)),
    "'": Operation("A -- A'", adjoint),
})

MATH = named({
    'chs': Operation('x -- -x', operator.__neg__),
    'inv': Operation('x -- 1/x', inverse),
    'minv': Operation('A -- A^-1', numpy.linalg.inv, accepts=MATRICES,
                      doc='Matrix inverse.'),
    'abs': Operation('x -- |x|', _unary(abs, abs, numpy.abs)),
    'sqrt': Operation('x -- sqrt(x)',
                      _unary(math.sqrt, cmath.sqrt, numpy.emath.sqrt)),
    'exp': Operation('x -- e^x', _unary(math.exp, cmath.exp, numpy.exp)),
    'ln': Operation('x -- ln(x)',
                    _unary(math.log, cmath.log, numpy.emath.log)),
    'log': Operation('x -- log10(x)',
                     _unary(math.log10, cmath.log10, numpy.emath.log10)),
    'sin': Operation('x -- sin(x)', _unary(math.sin, cmath.sin, numpy.sin)),
    'cos': Operation('x -- cos(x)', _unary(math.cos, cmath.cos, numpy.cos)),
    'tan': Operation('x -- tan(x)', _unary(math.tan, cmath.tan, numpy.tan)),
    'asin': Operation('x -- asin(x)',
                      _unary(math.asin, cmath.asin, numpy.emath.arcsin)),
    'acos': Operation('x -- acos(x)',
                      _unary(math.acos, cmath.acos, numpy.emath.arccos)),
    'atan': Operation('x -- atan(x)',
                      _unary(math.atan, cmath.atan, numpy.arctan)),
    'sinh': Operation('x -- sinh(x)',
                      _unary(math.sinh, cmath.sinh, numpy.sinh)),
    'cosh': Operation('x -- cosh(x)',
                      _unary(math.cosh, cmath.cosh, numpy.cosh)),
    'tanh': Operation('x -- tanh(x)',
                      _unary(math.tanh, cmath.tanh, numpy.tanh)),
    'asinh': Operation('x -- asinh(x)',
                       _unary(math.asinh, cmath.asinh, numpy.arcsinh)),
    'acosh': Operation('x -- acosh(x)',
                       _unary(math.acosh, cmath.acosh, numpy.arccosh)),
    'atanh': Operation('x -- atanh(x)',
                       _unary(math.atanh, cmath.atanh, numpy.emath.arctanh)),
    'pi': Operation('-- pi', _nullary(math.pi)),
    'e': Operation('-- e', _nullary(math.e)),
    'inf': Operation('-- inf', _nullary(math.inf)),
    'nan': Operation('-- nan', _nullary(math.nan)),
})

CMATH = named({
    're': Operation('z -- Re(z)', operator.attrgetter('real')),
    'im': Operation('z -- Im(z)', operator.attrgetter('imag')),
    'conj': Operation('z -- conj(z)', numpy.conj, doc='Complex conjugate.'),
    'arg': Operation('z -- arg(z)', phase),
    're2c': Operation('x -- x+0i', to_complex, accepts=(Real, MatrixReal)),
    'split_c': Operation('z -- Re(z) Im(z)', split_complex),
})

LOGIC = named({
    'eq': Operation('x y -- x==y', compare(operator.__eq__), accepts=SCALARS),
    'neq': Operation('x y -- x!=y', compare(operator.__ne__), accepts=SCALARS),
    'lt': Operation('x y -- x<y', compare(operator.__lt__), accepts=Real),
    'gt': Operation('x y -- x>y', compare(operator.__gt__), accepts=Real),
    'leq': Operation('x y -- x<=y', compare(operator.__le__), accepts=Real),
    'geq': Operation('x y -- x>=y', compare(operator.__ge__), accepts=Real),
    'and': Operation('x y -- x&&y', logical_and, accepts=Real),
    'or': Operation('x y -- x||y', logical_or, accepts=Real),
    'not': Operation('x -- !x', logical_not, accepts=Real),
})

MATRIX = named({
    'tran': Operation('A -- A^T', transpose, accepts=MATRICES),
    'det': Operation('A -- det(A)', determinant, accepts=MATRICES),
    'eye': Operation('n -- I_n', identity, accepts=Real),
    'ones': Operation('rows cols -- A', ones, accepts=Real),
    'zeroes': Operation('rows cols -- A', zeroes, accepts=Real),
    'reshape': Operation('A rows cols -- B', reshape,
                         accepts=[MATRICES, Real, Real]),
    'dim': Operation('A -- rows cols', dimensions, accepts=MATRICES),
})

STRINGS = named({
    'scon': Operation('s1 s2 -- s1s2', concatenate, accepts=String),
    's2u': Operation('s -- S', str.upper, accepts=String),
    's2l': Operation('S -- s', str.lower, accepts=String),
    'slen': Operation('s -- n', len, accepts=String),
    'srev': Operation('s -- s_rev', lambda s: s[::-1], accepts=String,
                      doc='Reverse a string.'),
    'substr': Operation('s start len -- s_sub', substring,
                        accepts=[String, Real, Real]),
    'int2str': Operation('n -- s', int_to_string, accepts=Real),
})

# All numeric builtins, by name
OPERATIONS = dict()
for table in BUILTINS, MATH, CMATH, LOGIC, MATRIX, STRINGS:
    OPERATIONS.update(table)

__all__ = 'Operation', 'OPERATIONS'
