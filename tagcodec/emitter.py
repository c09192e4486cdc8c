"""Node tree to YAML text emission.

Nodes are turned into PyYAML events and handed to yaml.emit(). Anchors and
aliases are emitted exactly as the tree carries them; the tree is expected
to come from Serializer (or Composer), which place every anchor before its
aliases.
"""

import yaml
from yaml.events import (
    AliasEvent,
    DocumentEndEvent,
    DocumentStartEvent,
    MappingEndEvent,
    MappingStartEvent,
    ScalarEvent,
    SequenceEndEvent,
    SequenceStartEvent,
    StreamEndEvent,
    StreamStartEvent,
)
from yaml.emitter import EmitterError as YAMLEmitterError

from tagcodec.error import CodecError
from tagcodec.nodes import AliasNode, MappingNode, Node, ScalarNode, SequenceNode


class EmitterError(CodecError):
    pass


def node_events(node, anchors=None):
    """Recursively yield events from a node tree.

    `anchors` collects the anchors emitted so far; an alias must refer to
    one of them.
    """
    if anchors is None:
        anchors = set()
    if not isinstance(node, Node):
        raise EmitterError("expected a node, but found %r" % (node,))
    if isinstance(node, AliasNode):
        if node.anchor not in anchors:
            raise EmitterError("found undefined alias %r" % node.anchor)
        yield AliasEvent(node.anchor)
        return
    if node.anchor is not None:
        anchors.add(node.anchor)
    if isinstance(node, ScalarNode):
        if node.tag is None:
            implicit = (True, True)
        else:
            implicit = (False, False)
        yield ScalarEvent(node.anchor, node.tag, implicit, node.value,
                          style=node.style or None)
    elif isinstance(node, SequenceNode):
        yield SequenceStartEvent(node.anchor, node.tag, node.tag is None,
                                 flow_style=node.flow_style)
        for item in node.value:
            yield from node_events(item, anchors)
        yield SequenceEndEvent()
    elif isinstance(node, MappingNode):
        yield MappingStartEvent(node.anchor, node.tag, node.tag is None,
                                flow_style=node.flow_style)
        for key_node, value_node in node.value:
            yield from node_events(key_node, anchors)
            yield from node_events(value_node, anchors)
        yield MappingEndEvent()
    else:
        raise EmitterError("expected a node, but found %r" % (node,))


def _has_anchors(node, seen):
    if not isinstance(node, Node) or id(node) in seen:
        return False
    seen.add(id(node))
    if node.anchor is not None:
        return True
    if isinstance(node, SequenceNode):
        return any(_has_anchors(item, seen) for item in node.value)
    if isinstance(node, MappingNode):
        return any(_has_anchors(key_node, seen) or _has_anchors(value_node, seen)
                   for key_node, value_node in node.value)
    return False


def document_events(nodes, explicit_start=None):
    yield StreamStartEvent()
    for node in nodes:
        # Use explicit document start only when anchors exist
        explicit = explicit_start
        if explicit is None:
            explicit = _has_anchors(node, set())
        yield DocumentStartEvent(explicit=explicit)
        yield from node_events(node)
        yield DocumentEndEvent(explicit=False)
    yield StreamEndEvent()


def emit(node, stream=None, explicit_start=None, **kwargs):
    """Emit a node tree as YAML; return the text when `stream` is None.

    Remaining keyword arguments (indent, width, allow_unicode, ...) go to
    yaml.emit().
    """
    return emit_all([node], stream, explicit_start=explicit_start, **kwargs)


def emit_all(nodes, stream=None, explicit_start=None, **kwargs):
    """Emit several node trees as a multi-document stream."""
    kwargs.setdefault('allow_unicode', True)
    try:
        return yaml.emit(document_events(nodes, explicit_start), stream,
                         Dumper=yaml.SafeDumper, **kwargs)
    except YAMLEmitterError as exc:
        raise EmitterError(str(exc)) from exc
