"""
tagcodec - Tagged object graph codec

Turns a tree of tagged, anchored document nodes into a graph of typed
Python objects and back. Tags select the type to build, anchors and aliases
become shared (possibly cyclic) references.

Key features:
- Type registries passed into each call, no global tables
- Safe mode (registered tags only) and opt-in unsafe mode
- Shared references and cycles through anchors and aliases
- Errors carry the document path of the failing node
- YAML text in and out through PyYAML

Example:
    >>> import tagcodec
    >>> registry = tagcodec.TypeRegistry.standard()
    >>> @registry.register_type
    ... class Point:
    ...     def __init__(self, x, y):
    ...         self.x, self.y = x, y
    >>> data = tagcodec.load("a: &p !Point {x: 1, y: 2}\\nb: *p", registry)
    >>> data['a'] is data['b']
    True
    >>> print(tagcodec.dump([data['a'], data['a']], registry=registry), end='')
    ---
    - &id001 !Point
      x: 1
      y: 2
    - *id001
"""

from tagcodec.composer import Composer, ComposerError, compose, compose_all
from tagcodec.constructor import (
    Constructor,
    ConstructorError,
    DepthLimitError,
    MissingFieldError,
    UnhashableKeyError,
    UnknownFieldError,
)
from tagcodec.emitter import EmitterError, emit, emit_all
from tagcodec.error import CodecError, Mark, MarkedCodecError, format_path
from tagcodec.nodes import (
    AliasNode,
    MappingNode,
    Node,
    ScalarNode,
    SequenceNode,
    equivalent,
)
from tagcodec.references import (
    DuplicateAnchorError,
    IncompleteGraphError,
    Placeholder,
    ReferenceResolver,
    UndefinedAnchorError,
)
from tagcodec.registry import (
    LENIENT,
    SAFE,
    STRICT,
    UNSAFE,
    DuplicateTagError,
    OrderedPairs,
    Pairs,
    RegistryError,
    ResolutionError,
    TypeDescriptor,
    TypeRegistry,
    UnknownTagError,
    UnresolvableTypeError,
    descriptor_from_type,
    import_type_resolver,
    qualified_tag,
    tag_from_class_name,
)
from tagcodec.serializer import Serializer, SerializerError, UnregisteredTypeError


__version__ = '0.3.0'


_default_registry = TypeRegistry.standard().freeze()


def default_registry():
    """Return the shared, frozen standard registry used when none is given."""
    return _default_registry


def _registry(registry):
    if registry is None:
        return _default_registry
    return registry


def deserialize(node, registry=None, mode=SAFE, strictness=STRICT, type_resolver=None,
                max_depth=None):
    """
    Construct the object graph for a node tree.

    Args:
        node: Root node of one document
        registry: TypeRegistry to resolve tags with (default: the standard
            registry)
        mode: 'safe' or 'unsafe'. Unsafe mode builds unregistered tags
            through the type resolver, which may import and instantiate
            arbitrary classes.
        strictness: 'strict' or 'lenient' handling of unknown fields
        type_resolver: Unsafe-mode lookup overriding the registry's
        max_depth: Optional nesting limit

    Returns:
        The constructed object graph

    Raises:
        MarkedCodecError: On any failure; no partial graph is returned
    """
    if node is None:
        return None
    constructor = Constructor(_registry(registry), mode=mode, strictness=strictness,
                              type_resolver=type_resolver, max_depth=max_depth)
    return constructor.construct_document(node)


def serialize(data, registry=None, strictness=STRICT):
    """Represent an object graph as a node tree with generated anchors."""
    return Serializer(_registry(registry), strictness=strictness).serialize(data)


def load(stream, registry=None, strictness=STRICT, max_depth=None):
    """
    Parse the first YAML document in a stream and construct it in safe mode.

    Only tags known to `registry` are constructed.
    """
    return deserialize(compose(stream), registry, mode=SAFE, strictness=strictness,
                       max_depth=max_depth)


def unsafe_load(stream, registry=None, strictness=STRICT, type_resolver=None,
                max_depth=None):
    """
    Parse a YAML document and construct it in unsafe mode.

    Unregistered tags name Python types that are imported and called. Never
    use this on untrusted input.
    """
    return deserialize(compose(stream), registry, mode=UNSAFE, strictness=strictness,
                       type_resolver=type_resolver, max_depth=max_depth)


def load_all(stream, registry=None, mode=SAFE, strictness=STRICT, type_resolver=None,
             max_depth=None):
    """Parse all YAML documents in a stream and yield their object graphs."""
    for node in compose_all(stream):
        yield deserialize(node, registry, mode=mode, strictness=strictness,
                          type_resolver=type_resolver, max_depth=max_depth)


def dump(data, stream=None, registry=None, strictness=STRICT, **kwargs):
    """
    Serialize an object graph into a YAML document.

    Returns the text if `stream` is None. Remaining keyword arguments go to
    the emitter (indent, width, explicit_start, ...).
    """
    return emit(serialize(data, registry, strictness), stream, **kwargs)


def dump_all(documents, stream=None, registry=None, strictness=STRICT, **kwargs):
    """Serialize a sequence of object graphs into a multi-document stream."""
    nodes = [serialize(data, registry, strictness) for data in documents]
    return emit_all(nodes, stream, **kwargs)


__all__ = [
    # Codec API
    'deserialize', 'serialize', 'default_registry',
    'load', 'unsafe_load', 'load_all', 'dump', 'dump_all',
    'compose', 'compose_all', 'emit', 'emit_all',
    # Modes
    'SAFE', 'UNSAFE', 'STRICT', 'LENIENT',
    # Registry
    'TypeRegistry', 'TypeDescriptor', 'descriptor_from_type',
    'import_type_resolver', 'tag_from_class_name', 'qualified_tag',
    'Pairs', 'OrderedPairs',
    # Engines
    'Constructor', 'Serializer', 'Composer', 'ReferenceResolver', 'Placeholder',
    # Nodes
    'Node', 'ScalarNode', 'SequenceNode', 'MappingNode', 'AliasNode', 'equivalent',
    # Errors
    'Mark', 'format_path', 'CodecError', 'MarkedCodecError',
    'RegistryError', 'DuplicateTagError', 'ResolutionError', 'UnknownTagError',
    'UnresolvableTypeError', 'UndefinedAnchorError', 'DuplicateAnchorError',
    'IncompleteGraphError', 'ConstructorError', 'MissingFieldError',
    'UnknownFieldError', 'UnhashableKeyError', 'DepthLimitError',
    'SerializerError', 'UnregisteredTypeError', 'ComposerError', 'EmitterError',
]
