"""Node tree to object graph construction.

Constructor.construct_document() works in two passes over the tree:

1. check_node() walks the whole document in order, resolving every tag and
   checking aliases, field names and mapping keys. No registered build
   callable has run when one of these checks fails.
2. construct_object() builds the objects bottom-up. Anchored untagged
   collections are registered before their children are built, so aliases
   inside them get the real list or dict. Every other anchored node goes
   through the begin/complete protocol of ReferenceResolver, and aliases
   met on the way get a placeholder that is patched on completion.

Errors propagate as MarkedCodecError subclasses; every enclosing sequence
or mapping prepends its index or key to the error's path.
"""

import logging

from tagcodec import scalars
from tagcodec.error import MarkedCodecError
from tagcodec.nodes import AliasNode, MappingNode, ScalarNode, SequenceNode
from tagcodec.references import (
    DuplicateAnchorError,
    IncompleteGraphError,
    ReferenceResolver,
    UndefinedAnchorError,
    is_pending,
)
from tagcodec.registry import (
    PAIRS,
    SAFE,
    STRICT,
    UNSAFE,
    ResolutionError,
    UnresolvableTypeError,
    check_mode,
    check_strictness,
)


log = logging.getLogger(__name__)


class ConstructorError(MarkedCodecError):
    """A node tree could not be built into objects."""
    pass


class MissingFieldError(ConstructorError):
    pass


class UnknownFieldError(ConstructorError):
    pass


class UnhashableKeyError(ConstructorError):
    pass


class DepthLimitError(ConstructorError):
    pass


def key_label(node):
    """Path element naming the entry whose key is `node`."""
    if isinstance(node, ScalarNode):
        return node.value
    if isinstance(node, AliasNode):
        return '*' + node.anchor
    return '<%s key>' % node.id


class Constructor:
    """Builds an object graph from a node tree.

    Args:
        registry: TypeRegistry consulted for tagged nodes
        mode: 'safe' (registered tags only) or 'unsafe' (unregistered tags
            go to the type resolver)
        strictness: 'strict' rejects unknown fields of registered types,
            'lenient' drops them
        type_resolver: Overrides the registry's unsafe-mode type resolver
        max_depth: Optional nesting budget; deeper documents raise
            DepthLimitError before anything is built
    """

    def __init__(self, registry, mode=SAFE, strictness=STRICT, type_resolver=None,
                 max_depth=None):
        self.registry = registry
        self.mode = check_mode(mode)
        self.strictness = check_strictness(strictness)
        self.type_resolver = type_resolver
        self.max_depth = max_depth
        self.descriptors = {}
        self.anchored_nodes = {}
        self.references = None
        self.holders = {}

    def construct_document(self, node):
        """Construct and return the object graph rooted at `node`."""
        if self.mode == UNSAFE:
            log.warning("constructing a document in unsafe mode")
        try:
            self.check_node(node, 0)
            self.references = ReferenceResolver()
            data = self.construct_object(node)
            self.references.finish()
        finally:
            self.descriptors = {}
            self.anchored_nodes = {}
            self.references = None
            self.holders = {}
        return data

    # Validation pass

    def check_node(self, node, depth):
        if self.max_depth is not None and depth > self.max_depth:
            raise DepthLimitError(
                None, None, "exceeded the maximum nesting depth of %d" % self.max_depth,
                node.start_mark)
        if isinstance(node, AliasNode):
            if node.anchor not in self.anchored_nodes:
                raise UndefinedAnchorError(
                    None, None, "found undefined alias %r" % node.anchor, node.start_mark)
            return
        if node.anchor is not None:
            if node.anchor in self.anchored_nodes:
                raise DuplicateAnchorError(
                    "found duplicate anchor %r; first occurrence" % node.anchor,
                    self.anchored_nodes[node.anchor].start_mark,
                    "second occurrence", node.start_mark)
            self.anchored_nodes[node.anchor] = node
        descriptor = None
        if node.tag is not None and not self.is_native(node):
            descriptor = self.resolve_descriptor(node)
        if isinstance(node, SequenceNode):
            for index, item in enumerate(node.value):
                self.check_child(item, index, depth)
        elif isinstance(node, MappingNode):
            if descriptor is not None and descriptor.kind != PAIRS:
                self.check_fields(node, descriptor, depth)
                return
            for key_node, value_node in node.value:
                label = key_label(key_node)
                self.check_child(key_node, label, depth)
                if descriptor is None:
                    self.check_key(node, key_node, label)
                self.check_child(value_node, label, depth)

    def check_child(self, node, element, depth):
        try:
            self.check_node(node, depth + 1)
        except MarkedCodecError as exc:
            exc.prepend_path(element)
            raise

    def check_key(self, node, key_node, label):
        target = key_node
        if isinstance(key_node, AliasNode):
            target = self.anchored_nodes[key_node.anchor]
        if not isinstance(target, ScalarNode):
            raise UnhashableKeyError(
                "while constructing a mapping", node.start_mark,
                "found unhashable key", key_node.start_mark, path=[label])

    def check_fields(self, node, descriptor, depth):
        seen = set()
        for key_node, value_node in node.value:
            self.check_child(key_node, key_label(key_node), depth)
            name = self.field_name(node, key_node)
            if name in seen:
                raise ConstructorError(
                    "while constructing an object for the tag %r" % node.tag, node.start_mark,
                    "found duplicate field %r" % name, key_node.start_mark, path=[name])
            seen.add(name)
            if descriptor.field_names is not None and name not in descriptor.field_names \
                    and self.strictness == STRICT:
                raise UnknownFieldError(
                    "while constructing an object for the tag %r" % node.tag, node.start_mark,
                    "found unknown field %r" % name, key_node.start_mark, path=[name],
                    note="expected one of: %s" % ', '.join(descriptor.field_names))
            self.check_child(value_node, name, depth)
        missing = [name for name in (descriptor.field_names or sorted(descriptor.required))
                   if name in descriptor.required and name not in seen]
        if missing:
            raise MissingFieldError(
                "while constructing an object for the tag %r" % node.tag, node.start_mark,
                "missing required field%s %s" % (
                    's' if len(missing) > 1 else '', ', '.join(repr(name) for name in missing)),
                None)

    def field_name(self, node, key_node):
        target = key_node
        if isinstance(key_node, AliasNode):
            target = self.anchored_nodes[key_node.anchor]
        if not isinstance(target, ScalarNode):
            raise ConstructorError(
                "while constructing an object for the tag %r" % node.tag, node.start_mark,
                "expected a scalar field name, but found %s" % target.id, key_node.start_mark)
        return target.value

    def is_native(self, node):
        if node.tag == scalars.SEQ_TAG:
            expected = SequenceNode
        elif node.tag == scalars.MAP_TAG:
            expected = MappingNode
        else:
            return False
        if not isinstance(node, expected):
            raise ConstructorError(
                None, None,
                "expected a %s node, but found %s" % (expected.id, node.id),
                node.start_mark)
        return True

    def resolve_descriptor(self, node):
        try:
            descriptor = self.registry.resolve(node.tag, self.mode, self.type_resolver)
        except ResolutionError as exc:
            if exc.problem_mark is None:
                exc.problem_mark = node.start_mark
            raise
        except MarkedCodecError:
            raise
        except Exception as exc:
            raise UnresolvableTypeError(
                "while resolving the tag %r" % node.tag, None,
                "%s: %s" % (type(exc).__name__, exc), node.start_mark) from exc
        if not descriptor.accepts(node.id):
            raise ConstructorError(
                "while constructing an object for the tag %r" % node.tag, None,
                "expected a %s node, but found %s" % (descriptor.kind, node.id),
                node.start_mark)
        self.descriptors[node] = descriptor
        return descriptor

    # Construction pass

    def construct_object(self, node):
        """Construct a Python object from a node, dispatching by tag."""
        if isinstance(node, AliasNode):
            return self.references.lookup(node.anchor)
        if isinstance(node, SequenceNode) and node.tag in (None, scalars.SEQ_TAG):
            return self.construct_sequence(node)
        if isinstance(node, MappingNode) and node.tag in (None, scalars.MAP_TAG):
            return self.construct_mapping(node)
        if node.tag is None:
            data = scalars.construct_implicit(node.value, node.plain)
            if node.anchor is not None:
                self.references.begin(node.anchor)
                self.references.complete(node.anchor, data)
            return data
        descriptor = self.descriptors[node]
        if node.anchor is not None:
            self.references.begin(node.anchor)
        if isinstance(node, ScalarNode):
            if node.value == '' and node.plain:
                data = self.build(node, descriptor)
            else:
                data = self.build(node, descriptor, node.value)
        elif isinstance(node, SequenceNode):
            items = [self.construct_child(child, index)
                     for index, child in enumerate(node.value)]
            self.check_resolved(node, items)
            data = self.build(node, descriptor, items)
        elif descriptor.kind == PAIRS:
            pairs = self.construct_pairs(node)
            self.check_resolved(node, [item for pair in pairs for item in pair])
            data = self.build(node, descriptor, pairs)
        else:
            data = self.construct_fields(node, descriptor)
        if node.anchor is not None:
            self.references.complete(node.anchor, data)
        return data

    def construct_child(self, node, element):
        try:
            return self.construct_object(node)
        except MarkedCodecError as exc:
            exc.prepend_path(element)
            raise

    def construct_sequence(self, node):
        """Construct a list, registering it under its anchor first."""
        data = []
        if node.anchor is not None:
            self.references.begin(node.anchor)
            self.references.complete(node.anchor, data)
        for index, child in enumerate(node.value):
            item = self.construct_child(child, index)
            if is_pending(item):
                self.references.record(item, _item_patch(data, index, item))
                self.holders[id(data)] = data
            elif id(item) in self.holders:
                self.holders[id(data)] = data
            data.append(item)
        return data

    def construct_mapping(self, node):
        """Construct a dict, registering it under its anchor first."""
        data = {}
        if node.anchor is not None:
            self.references.begin(node.anchor)
            self.references.complete(node.anchor, data)
        for key_node, value_node in node.value:
            label = key_label(key_node)
            key = self.construct_child(key_node, label)
            if is_pending(key):
                raise IncompleteGraphError(
                    "while constructing a mapping", node.start_mark,
                    "found unconstructable recursive node", key_node.start_mark,
                    path=[label])
            try:
                hash(key)
            except TypeError as exc:
                raise UnhashableKeyError(
                    "while constructing a mapping", node.start_mark,
                    "found unhashable key", key_node.start_mark, path=[label]) from exc
            value = self.construct_child(value_node, label)
            if is_pending(value):
                self.references.record(value, _item_patch(data, key, value))
                self.holders[id(data)] = data
            elif id(value) in self.holders:
                self.holders[id(data)] = data
            data[key] = value
        return data

    def construct_pairs(self, node):
        pairs = []
        for key_node, value_node in node.value:
            label = key_label(key_node)
            key = self.construct_child(key_node, label)
            value = self.construct_child(value_node, label)
            pairs.append((key, value))
        return pairs

    def construct_fields(self, node, descriptor):
        fields = {}
        for key_node, value_node in node.value:
            name = self.field_name(node, key_node)
            if key_node.anchor is not None:
                self.construct_child(key_node, name)
            value = self.construct_child(value_node, name)
            if descriptor.field_names is not None and name not in descriptor.field_names:
                log.debug("ignoring unknown field %r of %r", name, node.tag)
                continue
            fields[name] = value
        data = self.build(node, descriptor, fields)
        for name, value in fields.items():
            if is_pending(value):
                self.references.record(value, _field_patch(descriptor, data, name, value))
            elif id(value) in self.holders and getattr(data, name, None) is not value:
                # Patches go to the container that was passed in.
                raise IncompleteGraphError(
                    "while constructing an object for the tag %r" % node.tag, node.start_mark,
                    "found unconstructable recursive node", None,
                    note="the field %r refers back to an ancestor, so the object must "
                         "keep the container it was given" % name, path=[name])
        return data

    def check_resolved(self, node, items):
        for item in items:
            if is_pending(item) or id(item) in self.holders:
                raise IncompleteGraphError(
                    "while constructing an object for the tag %r" % node.tag, node.start_mark,
                    "found unconstructable recursive node", None,
                    note="only mapping fields can refer back to the node being built")

    def build(self, node, descriptor, *args):
        try:
            return descriptor.build(*args)
        except MarkedCodecError:
            raise
        except Exception as exc:
            raise ConstructorError(
                "while constructing an object for the tag %r" % node.tag, node.start_mark,
                "%s: %s" % (type(exc).__name__, exc), None) from exc


def _item_patch(container, key, placeholder):
    def patch(data):
        if container[key] is not placeholder:
            return False
        container[key] = data
        return True
    return patch


def _field_patch(descriptor, owner, name, placeholder):
    def patch(data):
        if getattr(owner, name, None) is not placeholder:
            return False
        descriptor.assign(owner, name, data)
        return True
    return patch
