'''
Binary stack files.

Layout (version 1), every integer and float in the writer's byte order:

    magic       8 bytes  b'MM15STK\\0'
    version     u32      1
    endianness  u8       1 little, 2 big
    reserved    3 bytes  zero
    count       u32      number of elements, bottom first

then per element a u32 type tag (values.Kind) and its payload:

    REAL            f64
    COMPLEX         f64 re, f64 im
    STRING          u32 byte length N, N bytes (UTF-8, no terminator)
    MATRIX_REAL     u32 rows, u32 cols, rows*cols f64, row-major
    MATRIX_COMPLEX  u32 rows, u32 cols, rows*cols (f64 re, f64 im), row-major

Files written on a host of the other byte order are rejected, not swapped.
'''

from contextlib import suppress
import logging
import os
import struct
import sys
import tempfile

import numpy

from .util import SerializationFormatError, StorageError
from .values import (Complex, Kind, MatrixComplex, MatrixReal, Real,
                     StackValue, String)


logger = logging.getLogger(__name__)

MAGIC = b'MM15STK\0'
VERSION = 1

# Caps against corrupt or hostile files
MAX_STRING_BYTES = 1024 * 1024
MAX_MATRIX_DIM = 20000

ENDIAN_TAGS = {
    'little': 1,
    'big': 2,
}
HOST_TAG = ENDIAN_TAGS[sys.byteorder]

_ORDER = '<' if sys.byteorder == 'little' else '>'
HEADER = struct.Struct(_ORDER + '8sIB3xI')
U32 = struct.Struct(_ORDER + 'I')
F64 = struct.Struct(_ORDER + 'd')
C128 = struct.Struct(_ORDER + 'dd')
REAL_DTYPE = numpy.dtype(_ORDER + 'f8')
COMPLEX_DTYPE = numpy.dtype(_ORDER + 'c16')

# Strings survive any byte sequence in the file
_ENCODING = 'utf-8'
_ERRORS = 'surrogateescape'


def _check_dims(rows, cols):
    if not (0 < rows <= MAX_MATRIX_DIM and 0 < cols <= MAX_MATRIX_DIM):
        raise SerializationFormatError(
            'Matrix dimensions out of range: {} x {}'.format(rows, cols))


def encode(values):
    '''
    Return the complete file image for values, bottom first.

    Everything is validated here, before any file is touched.
    '''
    values = list(values)
    image = bytearray(HEADER.pack(MAGIC, VERSION, HOST_TAG, len(values)))
    for position, value in enumerate(values):
        if not isinstance(value, StackValue):
            raise SerializationFormatError(
                'Element {}: cannot serialize {!r}'.format(position, value))
        image += U32.pack(value.KIND)
        if isinstance(value, Real):
            image += F64.pack(value.value)
        elif isinstance(value, Complex):
            image += C128.pack(value.real, value.imag)
        elif isinstance(value, String):
            data = value.value.encode(_ENCODING, _ERRORS)
            if len(data) > MAX_STRING_BYTES:
                raise SerializationFormatError(
                    'Element {}: string too large ({} bytes)'.format(
                        position, len(data)))
            image += U32.pack(len(data))
            image += data
        else:
            _check_dims(value.rows, value.cols)
            dtype = (COMPLEX_DTYPE
                     if isinstance(value, MatrixComplex)
                     else REAL_DTYPE)
            image += U32.pack(value.rows)
            image += U32.pack(value.cols)
            data = numpy.ascontiguousarray(value.value, dtype=dtype)
            image += data.tobytes()
    return bytes(image)


class _Reader:
    '''
    Exact-length reads off a seekable binary stream.

    Lengths are checked against the bytes left before reading, so a corrupt
    size never turns into a huge allocation.
    '''

    def __init__(self, stream):
        self.stream = stream
        position = stream.tell()
        self.remaining = stream.seek(0, os.SEEK_END) - position
        stream.seek(position)

    def read(self, n, what):
        if n > self.remaining:
            raise SerializationFormatError(
                'Unexpected EOF while reading {} ({} bytes wanted, {} left)'
                .format(what, n, self.remaining))
        data = self.stream.read(n)
        self.remaining -= len(data)
        if len(data) != n:
            raise SerializationFormatError(
                'Unexpected EOF while reading {}'.format(what))
        return data

    def u32(self, what):
        return U32.unpack(self.read(U32.size, what))[0]

    def f64(self, what):
        return F64.unpack(self.read(F64.size, what))[0]

    def matrix(self, cls, dtype, what):
        rows = self.u32(what + ' rows')
        cols = self.u32(what + ' cols')
        _check_dims(rows, cols)
        data = self.read(rows * cols * dtype.itemsize, what + ' elements')
        return cls(numpy.frombuffer(data, dtype=dtype).reshape(rows, cols))


def decode(stream, capacity=None):
    '''
    Read a whole stack file from a binary stream; return its values.
    '''
    reader = _Reader(stream)
    magic, version, endian, count = HEADER.unpack(
        reader.read(HEADER.size, 'header'))
    if magic != MAGIC:
        raise SerializationFormatError('Not a stack file (bad magic)')
    if endian != HOST_TAG:
        raise SerializationFormatError(
            'Endianness mismatch (file={} host={})'.format(endian, HOST_TAG))
    if version != VERSION:
        raise SerializationFormatError(
            'Unsupported version {}'.format(version))
    if capacity is not None and count > capacity:
        raise SerializationFormatError(
            'File stack too large ({} > {})'.format(count, capacity))

    values = []
    for position in range(count):
        tag = reader.u32('element type')
        if tag == Kind.REAL:
            values.append(Real(reader.f64('real')))
        elif tag == Kind.COMPLEX:
            real = reader.f64('complex re')
            imag = reader.f64('complex im')
            values.append(Complex(real, imag))
        elif tag == Kind.STRING:
            length = reader.u32('string length')
            if length > MAX_STRING_BYTES:
                raise SerializationFormatError(
                    'String length too large ({})'.format(length))
            data = reader.read(length, 'string bytes')
            values.append(String(data.decode(_ENCODING, _ERRORS)))
        elif tag == Kind.MATRIX_REAL:
            values.append(reader.matrix(MatrixReal, REAL_DTYPE, 'real matrix'))
        elif tag == Kind.MATRIX_COMPLEX:
            values.append(reader.matrix(MatrixComplex, COMPLEX_DTYPE,
                                        'complex matrix'))
        else:
            raise SerializationFormatError(
                'Element {}: unknown type {}'.format(position, tag))
    return values


def save_stack_to_file(values, path):
    '''
    Atomically write values (a Stack or any sequence of values) to path.

    The image goes to a fresh temporary file next to path, is flushed and
    synced, then renamed over path. On failure the temporary file is removed
    and path is left as it was.
    '''
    values = list(values)
    image = encode(values)
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, temporary = tempfile.mkstemp(
            prefix=os.path.basename(path) + '.tmp', dir=directory)
    except OSError as e:
        raise StorageError('Cannot save stack to {}: {}'.format(
            path, e)) from e

    saved = False
    try:
        with os.fdopen(fd, 'wb') as fp:
            fp.write(image)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(temporary, path)
        saved = True
    except OSError as e:
        raise StorageError('Cannot save stack to {}: {}'.format(
            path, e)) from e
    finally:
        if not saved:
            with suppress(OSError):
                os.unlink(temporary)
    logger.info('Saved %d element(s) to %s', len(values), path)


def load_stack_from_file(stack, path):
    '''
    Replace the contents of stack with the values stored at path.

    Any failure, including a missing file, leaves the stack empty.
    '''
    try:
        fp = open(path, 'rb')
    except OSError as e:
        stack.clear()
        raise StorageError('Cannot load stack from {}: {}'.format(path, e)) \
            from e

    with fp:
        try:
            values = decode(fp, stack.capacity)
        except SerializationFormatError as e:
            stack.clear()
            logger.debug('Rejected %s: %s', path, e)
            raise
        except OSError as e:
            stack.clear()
            raise StorageError('Cannot load stack from {}: {}'.format(
                path, e)) from e
        except MemoryError as e:
            stack.clear()
            raise SerializationFormatError(
                'Stack file {} too large to load'.format(path)) from e

    stack.clear()
    stack.replace(0, *values)
    logger.info('Loaded %d element(s) from %s', len(values), path)
