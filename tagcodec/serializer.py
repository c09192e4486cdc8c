"""Object graph to node tree serialization.

Serializer.serialize() runs three steps:

1. represent_data() turns objects into nodes, memoizing on object identity
   so an object reachable twice maps to a single node. Collection nodes are
   memoized before their children are represented, so cycles terminate.
2. anchor_node() finds the nodes reached more than once and names them
   id001, id002, ...
3. serialize_node() walks the node graph depth-first; the first visit of
   an anchored node keeps it (with its anchor), any later visit, including
   one from inside the node itself, becomes an AliasNode.
"""

import logging

from tagcodec import scalars
from tagcodec.error import MarkedCodecError
from tagcodec.nodes import AliasNode, MappingNode, ScalarNode, SequenceNode
from tagcodec.registry import (
    PAIRS,
    SCALAR,
    SEQUENCE,
    STRICT,
    check_strictness,
    qualified_tag,
)


log = logging.getLogger(__name__)


class SerializerError(MarkedCodecError):
    pass


class UnregisteredTypeError(SerializerError):
    pass


class Serializer:
    """Builds a node tree from an object graph.

    Args:
        registry: TypeRegistry whose descriptors give tags and field layouts
        strictness: 'strict' raises UnregisteredTypeError for objects of
            unregistered types; 'lenient' emits them under their qualified
            class name with their instance dictionary as fields
    """

    ANCHOR_TEMPLATE = 'id%03d'

    def __init__(self, registry, strictness=STRICT):
        self.registry = registry
        self.strictness = check_strictness(strictness)
        self.represented_objects = {}
        self.object_keeper = []
        self.anchors = {}
        self.anchor_count = 0

    def serialize(self, data):
        """Return the node tree representing `data`."""
        try:
            node = self.represent_data(data)
            self.anchor_node(node)
            return self.serialize_node(node, set())
        finally:
            self.represented_objects = {}
            self.object_keeper = []
            self.anchors = {}
            self.anchor_count = 0

    def ignore_aliases(self, data):
        """Return True if aliases should not be used for this data."""
        if data is None:
            return True
        if isinstance(data, (str, bytes, bool, int, float)):
            return True
        return False

    def represent_data(self, data):
        if self.ignore_aliases(data):
            alias_key = None
        else:
            alias_key = id(data)
            if alias_key in self.represented_objects:
                return self.represented_objects[alias_key]
            # ids are only unique among live objects
            self.object_keeper.append(data)

        data_type = type(data)
        if data is None:
            node = ScalarNode(None, 'null')
        elif data_type is bool:
            node = ScalarNode(None, 'true' if data else 'false')
        elif data_type is int:
            node = ScalarNode(None, str(data))
        elif data_type is float:
            node = ScalarNode(None, scalars.represent_float(data))
        elif data_type is str:
            node = self.represent_str(data)
        elif data_type is list:
            node = self.represent_sequence(None, data, alias_key)
        elif data_type is dict:
            node = self.represent_mapping(None, data.items(), alias_key)
        else:
            descriptor = self.registry.descriptor_for(data_type)
            if descriptor is not None:
                node = self.represent_object(descriptor, data, alias_key)
            elif isinstance(data, dict):
                node = self.represent_mapping(None, data.items(), alias_key)
            elif isinstance(data, list):
                node = self.represent_sequence(None, data, alias_key)
            else:
                node = self.represent_undefined(data, alias_key)

        if alias_key is not None and alias_key not in self.represented_objects:
            self.represented_objects[alias_key] = node
        return node

    def represent_child(self, data, element):
        try:
            return self.represent_data(data)
        except MarkedCodecError as exc:
            exc.prepend_path(element)
            raise

    def represent_str(self, data):
        # Strings that read back as another type must not be plain.
        if scalars.resolve_scalar_tag(data) != scalars.STR_TAG:
            return ScalarNode(None, data, style="'")
        return ScalarNode(None, data)

    def represent_sequence(self, tag, sequence, alias_key):
        value = []
        node = SequenceNode(tag, value)
        if alias_key is not None:
            self.represented_objects[alias_key] = node
        for index, item in enumerate(sequence):
            value.append(self.represent_child(item, index))
        return node

    def represent_mapping(self, tag, mapping, alias_key):
        value = []
        node = MappingNode(tag, value)
        if alias_key is not None:
            self.represented_objects[alias_key] = node
        for key, item in mapping:
            key_node = self.represent_child(key, key)
            value.append((key_node, self.represent_child(item, key)))
        return node

    def represent_fields(self, tag, fields, alias_key):
        value = []
        node = MappingNode(tag, value)
        if alias_key is not None:
            self.represented_objects[alias_key] = node
        for name, item in fields.items():
            value.append((ScalarNode(None, name), self.represent_child(item, name)))
        return node

    def represent_object(self, descriptor, data, alias_key):
        """Represent an instance of a registered type under its tag."""
        try:
            body = descriptor.represent(data)
        except MarkedCodecError:
            raise
        except Exception as exc:
            raise SerializerError(
                "while representing an object for the tag %r" % descriptor.tag, None,
                "%s: %s" % (type(exc).__name__, exc), None) from exc
        if descriptor.kind == SCALAR:
            if not isinstance(body, str):
                raise SerializerError(
                    "while representing an object for the tag %r" % descriptor.tag, None,
                    "expected scalar text, but found %s" % type(body).__name__, None)
            return ScalarNode(descriptor.tag, body)
        if descriptor.kind == SEQUENCE:
            return self.represent_sequence(descriptor.tag, body, alias_key)
        if descriptor.kind == PAIRS:
            return self.represent_mapping(descriptor.tag, body, alias_key)
        return self.represent_fields(descriptor.tag, body, alias_key)

    def represent_undefined(self, data, alias_key):
        cls = type(data)
        if self.strictness == STRICT:
            raise UnregisteredTypeError(
                None, None, "cannot represent an object of the unregistered type %s.%s"
                % (cls.__module__, cls.__qualname__))
        if not hasattr(data, '__dict__'):
            raise UnregisteredTypeError(
                None, None, "cannot represent an object of the unregistered type %s.%s "
                "without an instance dictionary" % (cls.__module__, cls.__qualname__))
        tag = qualified_tag(cls)
        log.debug("representing unregistered type as %r", tag)
        return self.represent_fields(tag, dict(vars(data)), alias_key)

    def anchor_node(self, node):
        """Pre-pass to detect nodes appearing more than once."""
        node_id = id(node)
        if node_id in self.anchors:
            if self.anchors[node_id] is None:
                self.anchor_count += 1
                self.anchors[node_id] = self.ANCHOR_TEMPLATE % self.anchor_count
        else:
            self.anchors[node_id] = None
            if isinstance(node, SequenceNode):
                for item in node.value:
                    self.anchor_node(item)
            elif isinstance(node, MappingNode):
                for key_node, value_node in node.value:
                    self.anchor_node(key_node)
                    self.anchor_node(value_node)

    def serialize_node(self, node, serialized):
        node_id = id(node)
        anchor = self.anchors.get(node_id)
        if node_id in serialized:
            return AliasNode(anchor)
        serialized.add(node_id)
        node.anchor = anchor
        if isinstance(node, SequenceNode):
            node.value = [self.serialize_node(item, serialized) for item in node.value]
        elif isinstance(node, MappingNode):
            node.value = [(self.serialize_node(key_node, serialized),
                           self.serialize_node(value_node, serialized))
                          for key_node, value_node in node.value]
        return node
