'''
Tagged stack values.

Exactly five kinds of value live on the stack. Scalars wrap Python numbers,
matrices own a private 2-D numpy buffer. Duplicating a value (dup, over,
tuck, undo snapshots) goes through copy(), which never shares a buffer.
'''

from enum import IntEnum
import math
import numbers

import numpy

from .util import TypeMismatch


DEFAULT_PRECISION = 15


class Kind(IntEnum):
    '''
    Type tags, as stored in stack files.
    '''
    REAL = 0
    COMPLEX = 1
    STRING = 2
    MATRIX_REAL = 3
    MATRIX_COMPLEX = 4


def _same_float(a, b):
    return a == b or (math.isnan(a) and math.isnan(b))


class StackValue:
    '''
    Base of all stack values.

    Subclasses set KIND and NAME, and hold their payload in .value.
    '''
    KIND = None
    NAME = None

    __slots__ = ('value',)

    def unwrap(self):
        '''
        Return the payload as a plain Python/numpy object.
        '''
        return self.value

    def copy(self):
        return type(self)(self.value)

    def format(self, precision=None):
        raise NotImplementedError

    def __str__(self):
        return self.format()

    def __repr__(self):
        return '{}({!r})'.format(type(self).__name__, self.value)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self.value == other.value

    __hash__ = None


class Real(StackValue):
    KIND = Kind.REAL
    NAME = 'real'

    __slots__ = ()

    def __init__(self, value):
        self.value = float(value)

    def format(self, precision=None):
        return _format_float(self.value, precision)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return _same_float(self.value, other.value)


class Complex(StackValue):
    KIND = Kind.COMPLEX
    NAME = 'complex'

    __slots__ = ()

    def __init__(self, value, imag=None):
        if imag is not None:
            value = complex(value, imag)
        self.value = complex(value)

    @property
    def real(self):
        return self.value.real

    @property
    def imag(self):
        return self.value.imag

    def format(self, precision=None):
        return _format_complex(self.value, precision)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return (_same_float(self.real, other.real) and
                _same_float(self.imag, other.imag))


class String(StackValue):
    KIND = Kind.STRING
    NAME = 'string'

    __slots__ = ()

    def __init__(self, value):
        self.value = str(value)

    def format(self, precision=None):
        return '"{}"'.format(self.value)


class _Matrix(StackValue):
    '''
    Row-major matrix with at least one row and one column.
    '''
    DTYPE = None

    __slots__ = ()

    def __init__(self, value):
        data = numpy.array(value, dtype=type(self).DTYPE)
        if data.ndim != 2 or data.size == 0:
            raise TypeMismatch('Matrix must be 2-D and non-empty, got shape '
                               '{}'.format(data.shape))
        self.value = data

    @property
    def rows(self):
        return self.value.shape[0]

    @property
    def cols(self):
        return self.value.shape[1]

    def copy(self):
        return type(self)(self.value.copy())

    def __repr__(self):
        return '{}({!r})'.format(type(self).__name__, self.value.tolist())

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return (self.value.shape == other.value.shape and
                numpy.array_equal(self.value, other.value, equal_nan=True))


class MatrixReal(_Matrix):
    KIND = Kind.MATRIX_REAL
    NAME = 'real matrix'
    DTYPE = numpy.float64

    __slots__ = ()

    def format(self, precision=None):
        return _format_rows(self.value, _format_float, precision)


class MatrixComplex(_Matrix):
    KIND = Kind.MATRIX_COMPLEX
    NAME = 'complex matrix'
    DTYPE = numpy.complex128

    __slots__ = ()

    def format(self, precision=None):
        return _format_rows(self.value, _format_complex, precision)


# Numeric kinds, for type checks
SCALARS = (Real, Complex)
MATRICES = (MatrixReal, MatrixComplex)
NUMERIC = SCALARS + MATRICES
ANY = (StackValue,)


def wrap(obj):
    '''
    Convert a Python/numpy result into a stack value.

    1-D arrays become row vectors. Complex results stay complex even with a
    zero imaginary part.
    '''
    if isinstance(obj, StackValue):
        return obj
    if isinstance(obj, numpy.ndarray):
        if obj.ndim == 0:
            return wrap(obj.item())
        if obj.ndim == 1:
            obj = obj.reshape(1, -1)
        if numpy.iscomplexobj(obj):
            return MatrixComplex(obj)
        return MatrixReal(obj)
    if isinstance(obj, numpy.generic):
        return wrap(obj.item())
    if isinstance(obj, str):
        return String(obj)
    # bool and int are numbers.Real too
    if isinstance(obj, numbers.Real):
        return Real(obj)
    if isinstance(obj, numbers.Complex):
        return Complex(obj)
    raise TypeMismatch('Cannot put {!r} on the stack'.format(obj))


def _format_float(x, precision=None):
    if precision is None:
        precision = DEFAULT_PRECISION
    return '{:.{}g}'.format(x, precision)


def _format_complex(z, precision=None):
    return '({}, {})'.format(_format_float(z.real, precision),
                             _format_float(z.imag, precision))


def _format_rows(data, fmt, precision):
    cells = [[fmt(x, precision) for x in row] for row in data]
    width = max(len(cell) for row in cells for cell in row)
    return '\n'.join('[ ' + ' '.join(cell.rjust(width) for cell in row) + ' ]'
                     for row in cells)
