"""Node tree classes.

A document is a tree of ScalarNode, SequenceNode and MappingNode objects.
Any of them may carry a tag (selecting the type to construct) and an anchor
(marking it as a target for later references). AliasNode stands in for a
previously anchored node and has no tag of its own.
"""

from tagcodec import scalars


class Node:
    """Base class for document nodes."""

    def __init__(self, tag=None, value=None, anchor=None, start_mark=None, end_mark=None):
        self.tag = tag
        self.value = value
        self.anchor = anchor
        self.start_mark = start_mark
        self.end_mark = end_mark

    def __repr__(self):
        return '%s(tag=%r, anchor=%r, value=%r)' % (
            self.__class__.__name__, self.tag, self.anchor, self.value)


class ScalarNode(Node):
    """Scalar node (strings, numbers, etc.)."""
    id = 'scalar'

    def __init__(self, tag, value, anchor=None, start_mark=None, end_mark=None, style=None):
        super().__init__(tag, value, anchor, start_mark, end_mark)
        self.style = style

    @property
    def plain(self):
        return not self.style


class CollectionNode(Node):
    """Base class for collection nodes."""

    def __init__(self, tag, value, anchor=None, start_mark=None, end_mark=None, flow_style=None):
        super().__init__(tag, value, anchor, start_mark, end_mark)
        self.flow_style = flow_style


class SequenceNode(CollectionNode):
    """Sequence node (lists/arrays)."""
    id = 'sequence'


class MappingNode(CollectionNode):
    """Mapping node (dicts/objects)."""
    id = 'mapping'


class AliasNode(Node):
    """Reference to the node anchored as `anchor` earlier in the document."""
    id = 'alias'

    def __init__(self, anchor, start_mark=None, end_mark=None):
        super().__init__(None, anchor, anchor, start_mark, end_mark)

    def __repr__(self):
        return 'AliasNode(%r)' % self.anchor


def equivalent(left, right):
    """Check two node trees for structural equivalence.

    Anchor names only have to correspond one-to-one, mapping pairs may come
    in any order and scalars compare by resolved tag and value rather than
    by lexical form (so '1.0' and '1.00' are the same float, and a timestamp
    or base64 block may be written in any valid form).
    """
    return _Equivalence().check(left, right)


class _Equivalence:

    def __init__(self):
        self.pairs = {}
        self.reverse = {}

    def check(self, left, right):
        if isinstance(left, AliasNode) or isinstance(right, AliasNode):
            if not (isinstance(left, AliasNode) and isinstance(right, AliasNode)):
                return False
            return self.pairs.get(left.anchor) == right.anchor
        if type(left) is not type(right):
            return False
        if (left.anchor is None) != (right.anchor is None):
            return False
        if left.anchor is not None:
            if left.anchor in self.pairs or right.anchor in self.reverse:
                return False
            self.pairs[left.anchor] = right.anchor
            self.reverse[right.anchor] = left.anchor
        if isinstance(left, ScalarNode):
            return self._scalar_key(left) == self._scalar_key(right)
        if _effective_tag(left) != _effective_tag(right):
            return False
        if isinstance(left, SequenceNode):
            if len(left.value) != len(right.value):
                return False
            return all(self.check(a, b) for a, b in zip(left.value, right.value))
        return self._check_mapping(left, right)

    def _check_mapping(self, left, right):
        if len(left.value) != len(right.value):
            return False
        remaining = list(right.value)
        for key_node, value_node in left.value:
            for index, (other_key, other_value) in enumerate(remaining):
                # Trial matches must not leak anchor pairings.
                saved = dict(self.pairs), dict(self.reverse)
                if self.check(key_node, other_key) and self.check(value_node, other_value):
                    del remaining[index]
                    break
                self.pairs, self.reverse = saved
            else:
                return False
        return True

    @staticmethod
    def _scalar_key(node):
        tag = _effective_tag(node)
        if tag in scalars.VALUE_SCALAR_TAGS:
            try:
                value = scalars.VALUE_SCALAR_TAGS[tag](node.value)
            except ValueError:
                # Malformed text only matches the same text.
                return tag, None, node.value
            if value != value:
                return tag, 'nan'
            return tag, value
        return tag, node.value


def _effective_tag(node):
    if node.tag is not None:
        return node.tag
    if isinstance(node, ScalarNode):
        if not node.plain:
            return scalars.STR_TAG
        return scalars.resolve_scalar_tag(node.value)
    if isinstance(node, SequenceNode):
        return scalars.SEQ_TAG
    return scalars.MAP_TAG
