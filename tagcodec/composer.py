"""YAML text to node tree composition.

PyYAML's parser produces the event stream; Composer turns it into tagcodec
nodes. Unlike PyYAML's own composer it keeps aliases as AliasNode instead of
sharing the anchored node, and it leaves implicit tags unresolved: an
untagged node stays untagged and is typed by the constructor.
"""

import yaml
from yaml.events import (
    AliasEvent,
    MappingEndEvent,
    MappingStartEvent,
    ScalarEvent,
    SequenceEndEvent,
    SequenceStartEvent,
    StreamEndEvent,
    StreamStartEvent,
)

from tagcodec import scalars
from tagcodec.error import Mark, MarkedCodecError
from tagcodec.nodes import AliasNode, MappingNode, ScalarNode, SequenceNode


class ComposerError(MarkedCodecError):
    """YAML composer error (e.g., duplicate anchor)."""
    pass


class Composer:
    """YAML composer - converts an event stream to node trees."""

    def __init__(self, events):
        self.events = iter(events)
        self.current_event = None
        self.anchors = {}

    @classmethod
    def from_stream(cls, stream):
        return cls(yaml.parse(stream, Loader=yaml.SafeLoader))

    def peek_event(self):
        if self.current_event is None:
            self.current_event = next(self.events, None)
        return self.current_event

    def get_event(self):
        event = self.peek_event()
        self.current_event = None
        return event

    def check_event(self, *choices):
        event = self.peek_event()
        if event is None:
            return False
        if not choices:
            return True
        return isinstance(event, choices)

    def check_node(self):
        # Drop StreamStartEvent
        if self.check_event(StreamStartEvent):
            self.get_event()
        return not self.check_event(StreamEndEvent)

    def get_node(self):
        if self.check_node():
            return self.compose_document()
        return None

    def get_single_node(self):
        document = self.get_node()
        if self.check_node():
            event = self.get_event()
            raise ComposerError(
                "expected a single document in the stream",
                document.start_mark if document is not None else None,
                "but found another document", Mark.from_yaml(event.start_mark))
        # Drop StreamEndEvent
        self.get_event()
        return document

    def compose_document(self):
        # Drop DocumentStartEvent
        self.get_event()
        node = self.compose_node()
        # Drop DocumentEndEvent
        self.get_event()
        self.anchors = {}
        return node

    def compose_node(self):
        if self.check_event(AliasEvent):
            event = self.get_event()
            return AliasNode(event.anchor,
                             start_mark=Mark.from_yaml(event.start_mark),
                             end_mark=Mark.from_yaml(event.end_mark))
        event = self.peek_event()
        anchor = event.anchor
        if anchor is not None and anchor in self.anchors:
            raise ComposerError(
                "found duplicate anchor %r; first occurrence" % anchor,
                self.anchors[anchor].start_mark,
                "second occurrence", Mark.from_yaml(event.start_mark))
        if self.check_event(ScalarEvent):
            node = self.compose_scalar_node(anchor)
        elif self.check_event(SequenceStartEvent):
            node = self.compose_sequence_node(anchor)
        else:
            node = self.compose_mapping_node(anchor)
        return node

    def compose_scalar_node(self, anchor):
        event = self.get_event()
        tag = event.tag
        if tag == '!':
            # Non-specific tag: the scalar is a string.
            tag = scalars.STR_TAG
        node = ScalarNode(tag, event.value, anchor,
                          start_mark=Mark.from_yaml(event.start_mark),
                          end_mark=Mark.from_yaml(event.end_mark),
                          style=event.style)
        if anchor is not None:
            self.anchors[anchor] = node
        return node

    def compose_sequence_node(self, anchor):
        start_event = self.get_event()
        tag = start_event.tag
        if tag == '!':
            tag = None
        node = SequenceNode(tag, [], anchor,
                            start_mark=Mark.from_yaml(start_event.start_mark),
                            end_mark=None,
                            flow_style=start_event.flow_style)
        if anchor is not None:
            self.anchors[anchor] = node
        while not self.check_event(SequenceEndEvent):
            node.value.append(self.compose_node())
        end_event = self.get_event()
        node.end_mark = Mark.from_yaml(end_event.end_mark)
        return node

    def compose_mapping_node(self, anchor):
        start_event = self.get_event()
        tag = start_event.tag
        if tag == '!':
            tag = None
        node = MappingNode(tag, [], anchor,
                           start_mark=Mark.from_yaml(start_event.start_mark),
                           end_mark=None,
                           flow_style=start_event.flow_style)
        if anchor is not None:
            self.anchors[anchor] = node
        while not self.check_event(MappingEndEvent):
            key_node = self.compose_node()
            value_node = self.compose_node()
            node.value.append((key_node, value_node))
        end_event = self.get_event()
        node.end_mark = Mark.from_yaml(end_event.end_mark)
        return node


def compose(stream):
    """Parse a single-document stream into a node tree (None if empty)."""
    return Composer.from_stream(stream).get_single_node()


def compose_all(stream):
    """Parse a stream and yield a node tree per document."""
    composer = Composer.from_stream(stream)
    while composer.check_node():
        yield composer.compose_document()
