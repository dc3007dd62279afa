from .util import StackOverflow, StackUnderflow, TypeMismatch


class Stack:
    '''
    Fixed-capacity value stack, bottom first.

    Operations that consume several values peek and validate them all before
    touching anything, then commit once through replace(). A failing
    operation therefore leaves the stack exactly as it found it.
    '''

    CAPACITY = 1000

    def __init__(self, capacity=None):
        self.capacity = (capacity if capacity is not None
                         else type(self).CAPACITY)
        self.items = []

    @property
    def top(self):
        '''
        Index of the top element, -1 when empty.
        '''
        return len(self.items) - 1

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def __repr__(self):
        return 'Stack({!r})'.format(self.items)

    def isfull(self):
        return len(self.items) >= self.capacity

    def push(self, value):
        '''
        Push one value; fails on a full stack.
        '''
        if self.isfull():
            raise StackOverflow('Stack full ({} elements)'.format(
                self.capacity))
        self.items.append(value)

    def pop(self):
        '''
        Pop and return the top value; fails on an empty stack.
        '''
        if not self.items:
            raise StackUnderflow('Empty stack')
        return self.items.pop()

    def peek(self, n=1):
        '''
        Return the top n values, bottom first, without removing them.
        '''
        if len(self.items) < n:
            raise StackUnderflow('Less than {} element(s) on stack'.format(n))
        if n == 0:
            return []
        return self.items[-n:]

    def require(self, *types):
        '''
        Peek len(types) values and check each against its type (or tuple of
        types), bottom first.
        '''
        values = self.peek(len(types))
        for position, (value, expected) in enumerate(zip(values, types)):
            if not isinstance(value, expected):
                raise TypeMismatch('Level {}: expected {}, got {}'.format(
                    len(values) - position,
                    _names(expected),
                    value.NAME))
        return values

    def replace(self, n, *values):
        '''
        Drop the top n values and push values in their place.

        The only commit point for multi-value operations. Depth and capacity
        are checked before anything moves.
        '''
        if len(self.items) < n:
            raise StackUnderflow('Less than {} element(s) on stack'.format(n))
        if len(self.items) - n + len(values) > self.capacity:
            raise StackOverflow('Stack full ({} elements)'.format(
                self.capacity))
        if n:
            del self.items[-n:]
        self.items.extend(values)

    def clear(self):
        self.items.clear()

    def copy(self):
        '''
        Deep copy; no payload is shared with the original.
        '''
        other = type(self)(self.capacity)
        other.items = [value.copy() for value in self.items]
        return other

    def restore(self, values):
        '''
        Replace the whole contents with copies of values.
        '''
        values = [value.copy() for value in values]
        if len(values) > self.capacity:
            raise StackOverflow('Stack full ({} elements)'.format(
                self.capacity))
        self.items = values


def _names(types):
    if isinstance(types, type):
        types = (types,)
    return ' or '.join(t.NAME or 'value' for t in types)
