from functools import wraps


class RPNError(Exception):
    pass


class LexError(RPNError):
    pass


class StackUnderflow(RPNError):
    pass


class StackOverflow(RPNError):
    pass


class TypeMismatch(RPNError):
    pass


class UnknownWord(RPNError):
    pass


class InvalidLabel(RPNError):
    pass


class ReturnStackUnderflow(RPNError):
    pass


class ProgramLoadError(RPNError):
    pass


class SerializationFormatError(RPNError):
    pass


class StorageError(RPNError):
    '''
    File open/read/write/sync/rename failure, wrapping the OSError.
    '''


def wrap_user_errors(fmt):
    '''
    Decorator that converts library exceptions into RPNErrors.

    Passes through RPNErrors. fmt is formatted with the wrapped call's
    arguments.
    '''
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except RPNError:
                raise
            except Exception as e:
                raise RPNError('{}: {}'.format(fmt.format(*args, **kwargs), e),
                               e)
        return wrapper
    return decorator
