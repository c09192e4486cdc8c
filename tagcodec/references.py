"""Anchor bookkeeping for a single deserialization call.

Construction of an anchored node is bracketed by begin() and complete().
Between the two, aliases to the anchor resolve to a Placeholder. Whoever
stores a placeholder records a patch for it; complete() hands the finished
object to every patch, and the placeholder itself becomes a resolved cell.
"""

import logging

from tagcodec.error import MarkedCodecError


log = logging.getLogger(__name__)


class UndefinedAnchorError(MarkedCodecError):
    pass


class DuplicateAnchorError(MarkedCodecError):
    pass


class IncompleteGraphError(MarkedCodecError):
    pass


class Placeholder:
    """Stand-in for an object whose construction is still in progress."""

    __slots__ = ('anchor', 'value', 'resolved')

    def __init__(self, anchor):
        self.anchor = anchor
        self.value = None
        self.resolved = False

    def __repr__(self):
        if self.resolved:
            return '<Placeholder &%s resolved to %r>' % (self.anchor, self.value)
        return '<Placeholder &%s pending>' % self.anchor


def is_pending(value):
    return isinstance(value, Placeholder) and not value.resolved


class ReferenceResolver:
    """Anchor table of one top-level call.

    Never share a resolver between calls: anchor names are only unique
    within one document.
    """

    def __init__(self):
        self.anchors = {}
        self.placeholders = {}
        self.patches = {}

    def begin(self, anchor):
        """Open the slot for `anchor` and return its placeholder."""
        if anchor in self.anchors:
            raise DuplicateAnchorError(
                None, None, "found duplicate anchor %r" % anchor)
        placeholder = Placeholder(anchor)
        self.anchors[anchor] = placeholder
        self.placeholders[anchor] = placeholder
        return placeholder

    def complete(self, anchor, data):
        """Bind `anchor` to `data` and patch every recorded occurrence."""
        placeholder = self.placeholders.pop(anchor, None)
        if placeholder is None:
            raise IncompleteGraphError(
                None, None, "anchor %r was completed without being begun" % anchor)
        placeholder.value = data
        placeholder.resolved = True
        self.anchors[anchor] = data
        for patch in self.patches.pop(anchor, ()):
            if not patch(data):
                raise IncompleteGraphError(
                    "while completing the anchor %r" % anchor, None,
                    "found unconstructable recursive node",
                    note="the object built for a node referring back to its "
                         "ancestor no longer holds the placeholder it was given")
        return data

    def lookup(self, anchor):
        """Return the object (or placeholder) bound to `anchor`."""
        try:
            return self.anchors[anchor]
        except KeyError:
            raise UndefinedAnchorError(
                None, None, "found undefined alias %r" % anchor) from None

    def record(self, placeholder, patch):
        """Call patch(obj) once the placeholder's anchor completes.

        The patch returns False when it cannot put the object in place.
        """
        self.patches.setdefault(placeholder.anchor, []).append(patch)

    def finish(self):
        """Check that the graph has no dangling placeholders."""
        if self.placeholders:
            anchors = sorted(self.placeholders)
            raise IncompleteGraphError(
                None, None, "anchors %s were begun but never completed"
                % ', '.join(repr(anchor) for anchor in anchors))
        if self.patches:
            raise IncompleteGraphError(
                None, None, "unresolved references to %s remain"
                % ', '.join(repr(anchor) for anchor in sorted(self.patches)))
        log.debug("resolved %d anchors", len(self.anchors))
