"""Error base classes and source marks.

Every failure the codec reports is a CodecError. Failures tied to a place
in a document are MarkedCodecErrors: besides the PyYAML-style context,
problem and marks they carry the path (mapping keys and sequence indices
from the document root) of the node that failed.
"""


ROOT = '<root>'


class Mark:
    """Represents a position in a document stream.

    Attributes:
        name: The name of the stream (e.g., filename or '<string>')
        index: Character index in the stream
        line: Line number (0-indexed)
        column: Column number (0-indexed)
        buffer: Optional buffer containing the source
        pointer: Optional pointer into the buffer
    """

    def __init__(self, name, index, line, column, buffer=None, pointer=None):
        self.name = name
        self.index = index
        self.line = line
        self.column = column
        self.buffer = buffer
        self.pointer = pointer

    @classmethod
    def from_yaml(cls, mark):
        """Convert a PyYAML mark (or None)."""
        if mark is None:
            return None
        return cls(mark.name, mark.index, mark.line, mark.column,
                   getattr(mark, 'buffer', None), getattr(mark, 'pointer', None))

    def get_snippet(self, indent=4, max_length=75):
        """Return a snippet of the source at this mark."""
        if self.buffer is None or self.pointer is None:
            return None

        head = ''
        start = self.pointer
        while start > 0 and self.buffer[start - 1] not in '\0\r\n\x85\u2028\u2029':
            start -= 1
            if self.pointer - start > max_length / 2 - 1:
                head = ' ... '
                start += 5
                break

        tail = ''
        end = self.pointer
        while end < len(self.buffer) and self.buffer[end] not in '\0\r\n\x85\u2028\u2029':
            end += 1
            if end - self.pointer > max_length / 2 - 1:
                tail = ' ... '
                end -= 5
                break

        snippet = self.buffer[start:end]
        return ' ' * indent + head + snippet + tail + '\n' + \
               ' ' * (indent + self.pointer - start + len(head)) + '^'

    def __str__(self):
        snippet = self.get_snippet()
        where = "  in \"%s\", line %d, column %d" % (self.name, self.line + 1, self.column + 1)
        if snippet is not None:
            where += ":\n" + snippet
        return where


def format_path(path):
    """Render a node path as '<root>/key/0/field'."""
    return '/'.join([ROOT] + [str(element) for element in path])


class CodecError(Exception):
    """Base exception for codec errors."""
    pass


class MarkedCodecError(CodecError):
    """Codec error with position marks and a document path.

    Attributes:
        context: Description of what was being done
        context_mark: Mark pointing to the context
        problem: Description of the problem
        problem_mark: Mark pointing to the problem
        note: Additional note about the error
        path: List of mapping keys / sequence indices from the root to the
            failing node. Outer constructs prepend their own element while
            the error propagates.
    """

    def __init__(self, context=None, context_mark=None,
                 problem=None, problem_mark=None, note=None, path=None):
        super().__init__(problem or context)
        self.context = context
        self.context_mark = context_mark
        self.problem = problem
        self.problem_mark = problem_mark
        self.note = note
        self.path = list(path) if path else []

    @property
    def kind(self):
        return type(self).__name__

    @property
    def message(self):
        if self.context is not None and self.problem is not None:
            return '%s: %s' % (self.context, self.problem)
        if self.problem is not None:
            return self.problem
        return self.context or ''

    @property
    def location(self):
        return format_path(self.path)

    def prepend_path(self, element):
        self.path.insert(0, element)

    def __str__(self):
        lines = []
        if self.context is not None:
            lines.append(self.context)
        if self.context_mark is not None \
                and (self.problem is None or self.problem_mark is None
                     or self.context_mark.name != self.problem_mark.name
                     or self.context_mark.line != self.problem_mark.line
                     or self.context_mark.column != self.problem_mark.column):
            lines.append(str(self.context_mark))
        if self.problem is not None:
            lines.append(self.problem)
        if self.problem_mark is not None:
            lines.append(str(self.problem_mark))
        lines.append("  at %s" % self.location)
        if self.note is not None:
            lines.append(self.note)
        return '\n'.join(lines)
