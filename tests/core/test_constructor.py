"""Tests for building object graphs from node trees.

Documents are written as node trees directly so that construction is
exercised without going through YAML text.
"""

import collections
import dataclasses
import datetime
import fractions

import pytest

import tagcodec
from tagcodec import scalars
from tagcodec.constructor import (
    Constructor,
    ConstructorError,
    DepthLimitError,
    MissingFieldError,
    UnhashableKeyError,
    UnknownFieldError,
)
from tagcodec.nodes import AliasNode, MappingNode, ScalarNode, SequenceNode
from tagcodec.references import (
    DuplicateAnchorError,
    IncompleteGraphError,
    UndefinedAnchorError,
)
from tagcodec.registry import (
    LENIENT,
    SCALAR,
    UNSAFE,
    TypeDescriptor,
    TypeRegistry,
    UnknownTagError,
    UnresolvableTypeError,
)


# ── Helpers ──────────────────────────────────────────────────────────

def scalar(value, tag=None, anchor=None, style=None):
    return ScalarNode(tag, value, anchor, style=style)


def seq(*items, tag=None, anchor=None):
    return SequenceNode(tag, list(items), anchor)


def mapping(*pairs, tag=None, anchor=None):
    return MappingNode(tag, [(scalar(key) if isinstance(key, str) else key, value)
                             for key, value in pairs], anchor)


def alias(anchor):
    return AliasNode(anchor)


@dataclasses.dataclass
class A:
    x: int


@dataclasses.dataclass
class B:
    x: int
    y: object = None


@dataclasses.dataclass
class Node:
    name: str
    next: object = None


class Box:
    """Keeps its field under a different attribute."""

    def __init__(self, inner):
        self.content = [inner]


class Holder:
    """Copies its items into a tuple."""

    def __init__(self, items):
        self.items = tuple(items)


class Keeper:
    def __init__(self, items):
        self.items = items


class RecordingResolver:

    def __init__(self):
        self.calls = []

    def __call__(self, tag):
        self.calls.append(tag)
        raise AssertionError("type resolver must not be called")


@pytest.fixture
def registry():
    registry = TypeRegistry.standard()
    registry.register_type(A)
    registry.register_type(B)
    registry.register_type(Node)
    return registry


# ── Untagged documents ───────────────────────────────────────────────

class TestNativeValues:

    def test_scalars_by_lexical_form(self):
        node = seq(scalar('1'), scalar('x'), scalar('true'), scalar('null'),
                   scalar('1.5'), scalar('~'), scalar('0x1F'))
        assert tagcodec.deserialize(node) == [1, 'x', True, None, 1.5, None, 31]

    def test_quoted_scalars_are_strings(self):
        node = seq(scalar('1', style="'"), scalar('true', style='"'))
        assert tagcodec.deserialize(node) == ['1', 'true']

    def test_mapping_keeps_document_order(self):
        node = mapping(('b', scalar('1')), ('a', scalar('2')))
        result = tagcodec.deserialize(node)
        assert result == {'b': 1, 'a': 2}
        assert list(result) == ['b', 'a']

    def test_non_string_keys(self):
        node = mapping((scalar('1'), scalar('one')), (scalar('null'), scalar('none')),
                       (scalar('1', style="'"), scalar('text')))
        assert tagcodec.deserialize(node) == {1: 'one', None: 'none', '1': 'text'}

    def test_nested(self):
        node = mapping(('a', seq(scalar('1'), mapping(('b', seq())))))
        assert tagcodec.deserialize(node) == {'a': [1, {'b': []}]}

    def test_none_document(self):
        assert tagcodec.deserialize(None) is None

    def test_untagged_documents_never_reach_type_resolver(self):
        resolver = RecordingResolver()
        node = mapping(('a', seq(scalar('1'), scalar('2'))), ('b', scalar('x')))
        result = tagcodec.deserialize(node, mode=UNSAFE, type_resolver=resolver)
        assert result == {'a': [1, 2], 'b': 'x'}
        assert resolver.calls == []


# ── Tagged nodes ─────────────────────────────────────────────────────

class TestTaggedNodes:

    def test_registered_mapping(self, registry):
        result = tagcodec.deserialize(mapping(('x', scalar('1')), tag='!A'), registry)
        assert result == A(1)

    def test_optional_field(self, registry):
        result = tagcodec.deserialize(mapping(('x', scalar('1')), tag='!B'), registry)
        assert result == B(1, None)

    def test_core_scalar_tags(self):
        node = seq(scalar('10', tag=scalars.INT_TAG, style='"'),
                   scalar('1', tag=scalars.STR_TAG),
                   scalar('3', tag=scalars.FLOAT_TAG))
        assert tagcodec.deserialize(node) == [10, '1', 3.0]

    def test_timestamp_and_binary(self):
        node = seq(scalar('2024-05-01', tag=scalars.TIMESTAMP_TAG),
                   scalar('aGVsbG8=', tag=scalars.BINARY_TAG))
        assert tagcodec.deserialize(node) == [datetime.date(2024, 5, 1), b'hello']

    def test_set(self):
        node = mapping(('a', scalar('')), ('b', scalar('')), tag=scalars.SET_TAG)
        assert tagcodec.deserialize(node) == {'a', 'b'}

    def test_omap(self):
        node = seq(mapping(('b', scalar('1'))), mapping(('a', scalar('2'))),
                   tag=scalars.OMAP_TAG)
        assert tagcodec.deserialize(node) == [('b', 1), ('a', 2)]

    def test_pair_sequence_types(self):
        omap = seq(mapping(('a', scalar('1'))), tag=scalars.OMAP_TAG)
        pairs = seq(mapping(('a', scalar('1'))), tag=scalars.PAIRS_TAG)
        assert type(tagcodec.deserialize(omap)) is tagcodec.OrderedPairs
        assert type(tagcodec.deserialize(pairs)) is tagcodec.Pairs

    def test_tuple(self):
        node = seq(scalar('1'), scalar('2'), tag=scalars.TUPLE_TAG)
        assert tagcodec.deserialize(node) == (1, 2)

    def test_explicit_seq_and_map(self):
        node = mapping(('a', seq(scalar('1'), tag=scalars.SEQ_TAG)), tag=scalars.MAP_TAG)
        assert tagcodec.deserialize(node) == {'a': [1]}

    def test_explicit_seq_on_mapping(self):
        with pytest.raises(ConstructorError):
            tagcodec.deserialize(mapping(('a', scalar('1')), tag=scalars.SEQ_TAG))

    def test_empty_plain_scalar_builds_without_argument(self):
        registry = TypeRegistry()
        registry.register('Empty', TypeDescriptor(
            None, lambda value='default': value, kind=SCALAR))
        assert tagcodec.deserialize(scalar('', tag='!Empty'), registry) == 'default'
        assert tagcodec.deserialize(scalar('', tag='!Empty', style="'"), registry) == ''

    def test_custom_scalar(self):
        registry = TypeRegistry()
        registry.register('Fraction', TypeDescriptor(
            None, fractions.Fraction, kind=SCALAR, type=fractions.Fraction))
        result = tagcodec.deserialize(scalar('3/4', tag='!Fraction'), registry)
        assert result == fractions.Fraction(3, 4)

    def test_kind_mismatch(self, registry):
        with pytest.raises(ConstructorError) as excinfo:
            tagcodec.deserialize(mapping(('a', scalar('1', tag='!A'))), registry)
        assert 'expected a mapping node, but found scalar' in str(excinfo.value)
        assert excinfo.value.path == ['a']

    def test_builder_errors_are_wrapped(self):
        def explode(fields):
            raise ValueError("bad value")

        registry = TypeRegistry()
        registry.register('Bomb', TypeDescriptor(None, explode))
        node = mapping(('items', seq(mapping(tag='!Bomb'))))
        with pytest.raises(ConstructorError) as excinfo:
            tagcodec.deserialize(node, registry)
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert excinfo.value.path == ['items', 0]
        assert 'ValueError: bad value' in str(excinfo.value)


# ── References ───────────────────────────────────────────────────────

class TestReferences:

    def test_shared_tagged_object(self, registry):
        """{one: &L !A {x: 1}, two: !B {x: 2, y: *L}}"""
        node = mapping(
            ('one', mapping(('x', scalar('1')), tag='!A', anchor='L')),
            ('two', mapping(('x', scalar('2')), ('y', alias('L')), tag='!B')))
        result = tagcodec.deserialize(node, registry)
        assert result['one'] == A(1)
        assert result['two'].y is result['one']

    def test_shared_untagged_mapping(self):
        node = mapping(('a', mapping(('k', scalar('1')), anchor='x')), ('b', alias('x')))
        result = tagcodec.deserialize(node)
        assert result['a'] is result['b']

    def test_anchored_scalar(self):
        result = tagcodec.deserialize(seq(scalar('hello', anchor='s'), alias('s')))
        assert result == ['hello', 'hello']

    def test_self_referencing_object(self, registry):
        """&n !Node {name: root, next: *n}"""
        node = mapping(('name', scalar('root')), ('next', alias('n')), tag='!Node', anchor='n')
        result = tagcodec.deserialize(node, registry)
        assert result.name == 'root'
        assert result.next is result

    def test_mutual_cycle(self, registry):
        node = mapping(
            ('name', scalar('a')),
            ('next', mapping(('name', scalar('b')), ('next', alias('a')), tag='!Node')),
            tag='!Node', anchor='a')
        result = tagcodec.deserialize(node, registry)
        assert result.next.name == 'b'
        assert result.next.next is result

    def test_self_referencing_list(self):
        result = tagcodec.deserialize(seq(scalar('1'), alias('l'), anchor='l'))
        assert result[0] == 1
        assert result[1] is result

    def test_self_referencing_dict(self):
        result = tagcodec.deserialize(mapping(('me', alias('d')), anchor='d'))
        assert result['me'] is result

    def test_object_inside_list_refers_to_list(self, registry):
        node = seq(mapping(('name', scalar('a')), ('next', alias('l')), tag='!Node'),
                   anchor='l')
        result = tagcodec.deserialize(node, registry)
        assert result[0].next is result

    def test_list_inside_object_refers_to_object(self, registry):
        node = mapping(('name', scalar('a')), ('next', seq(alias('n'), alias('n'))),
                       tag='!Node', anchor='n')
        result = tagcodec.deserialize(node, registry)
        assert result.next[0] is result
        assert result.next[1] is result

    def test_undefined_alias_path(self):
        """{a: [1, *missing]}"""
        node = mapping(('a', seq(scalar('1'), alias('missing'))))
        with pytest.raises(UndefinedAnchorError) as excinfo:
            tagcodec.deserialize(node)
        assert excinfo.value.path == ['a', 1]
        assert excinfo.value.location == '<root>/a/1'
        assert excinfo.value.kind == 'UndefinedAnchorError'

    def test_forward_reference(self):
        with pytest.raises(UndefinedAnchorError):
            tagcodec.deserialize(seq(alias('a'), scalar('1', anchor='a')))

    def test_duplicate_anchor(self):
        node = seq(scalar('1', anchor='a'), scalar('2', anchor='a'))
        with pytest.raises(DuplicateAnchorError) as excinfo:
            tagcodec.deserialize(node)
        assert excinfo.value.path == [1]

    def test_self_referencing_tuple(self):
        node = seq(alias('t'), tag=scalars.TUPLE_TAG, anchor='t')
        with pytest.raises(IncompleteGraphError):
            tagcodec.deserialize(node)

    def test_builder_dropping_placeholder(self):
        registry = TypeRegistry()
        registry.register_type(Box)
        node = mapping(('inner', alias('b')), tag='!Box', anchor='b')
        with pytest.raises(IncompleteGraphError):
            tagcodec.deserialize(node, registry)

    def test_builder_copying_container(self):
        """&h !Holder {items: [*h]}"""
        registry = TypeRegistry()
        registry.register_type(Holder)
        node = mapping(('items', seq(alias('h'))), tag='!Holder', anchor='h')
        with pytest.raises(IncompleteGraphError) as excinfo:
            tagcodec.deserialize(node, registry)
        assert excinfo.value.path == ['items']

    def test_builder_copying_nested_container(self):
        registry = TypeRegistry()
        registry.register_type(Holder)
        node = mapping(('items', mapping(('k', seq(alias('h'))))),
                       tag='!Holder', anchor='h')
        with pytest.raises(IncompleteGraphError):
            tagcodec.deserialize(node, registry)

    def test_nested_reference_inside_omap(self):
        """&m !Keeper {items: !!omap [{a: *m}]}"""
        registry = TypeRegistry.standard()
        registry.register_type(Keeper)
        node = mapping(('items', seq(mapping(('a', alias('m'))), tag=scalars.OMAP_TAG)),
                       tag='!Keeper', anchor='m')
        with pytest.raises(IncompleteGraphError) as excinfo:
            tagcodec.deserialize(node, registry)
        assert excinfo.value.path == ['items']

    def test_builder_keeping_container(self):
        registry = TypeRegistry()
        registry.register_type(Keeper)
        node = mapping(('items', mapping(('k', seq(alias('h'))))),
                       tag='!Keeper', anchor='h')
        result = tagcodec.deserialize(node, registry)
        assert result.items['k'][0] is result

    def test_recursive_key(self):
        node = mapping((alias('m'), scalar('1')), anchor='m')
        with pytest.raises(UnhashableKeyError):
            tagcodec.deserialize(node)


# ── Resolution ───────────────────────────────────────────────────────

class TestResolution:

    def test_safe_unknown_tag(self):
        resolver = RecordingResolver()
        node = mapping(('x', mapping(tag='!Widget')))
        with pytest.raises(UnknownTagError) as excinfo:
            tagcodec.deserialize(node, type_resolver=resolver)
        assert excinfo.value.path == ['x']
        assert resolver.calls == []

    def test_unsafe_unresolvable(self):
        node = mapping(('w', mapping(tag='!pkg.Widget')))
        with pytest.raises(UnresolvableTypeError) as excinfo:
            tagcodec.deserialize(node, mode=UNSAFE)
        assert excinfo.value.path == ['w']

    def test_unsafe_import(self):
        node = seq(mapping(('a', scalar('1')), tag='!collections.OrderedDict'),
                   scalar('1/3', tag='!fractions.Fraction'),
                   mapping(('days', scalar('2')), tag='!datetime.timedelta'),
                   seq(scalar('1'), scalar('2'), tag='!complex'))
        result = tagcodec.deserialize(node, mode=UNSAFE)
        assert result == [collections.OrderedDict(a=1), fractions.Fraction(1, 3),
                          datetime.timedelta(days=2), complex(1, 2)]
        assert type(result[0]) is collections.OrderedDict

    def test_unsafe_custom_resolver(self):
        calls = []

        def resolver(tag):
            calls.append(tag)
            return TypeDescriptor(None, lambda fields: ('widget', fields), kind=None)

        node = mapping(('size', scalar('3')), tag='!Widget')
        result = tagcodec.deserialize(node, mode=UNSAFE, type_resolver=resolver)
        assert result == ('widget', {'size': 3})
        assert calls == ['!Widget']

    def test_resolver_failure_is_wrapped(self):
        def resolver(tag):
            raise LookupError("no such widget")

        with pytest.raises(UnresolvableTypeError) as excinfo:
            tagcodec.deserialize(mapping(tag='!Widget'), mode=UNSAFE, type_resolver=resolver)
        assert isinstance(excinfo.value.__cause__, LookupError)


# ── Fields ───────────────────────────────────────────────────────────

class TestFields:

    def test_missing_field(self, registry):
        node = mapping(('a', mapping(tag='!A')))
        with pytest.raises(MissingFieldError) as excinfo:
            tagcodec.deserialize(node, registry)
        assert excinfo.value.path == ['a']
        assert "missing required field 'x'" in str(excinfo.value)

    def test_unknown_field_strict(self, registry):
        node = mapping(('a', mapping(('x', scalar('1')), ('z', scalar('2')), tag='!A')))
        with pytest.raises(UnknownFieldError) as excinfo:
            tagcodec.deserialize(node, registry)
        assert excinfo.value.path == ['a', 'z']

    def test_unknown_field_lenient(self, registry):
        node = mapping(('x', scalar('1')), ('z', scalar('2')), tag='!A')
        assert tagcodec.deserialize(node, registry, strictness=LENIENT) == A(1)

    def test_lenient_still_checks_unknown_field_values(self, registry):
        node = mapping(('x', scalar('1')), ('z', mapping(tag='!Widget')), tag='!A')
        with pytest.raises(UnknownTagError) as excinfo:
            tagcodec.deserialize(node, registry, strictness=LENIENT)
        assert excinfo.value.path == ['z']

    def test_duplicate_field(self, registry):
        node = mapping(('x', scalar('1')), ('x', scalar('2')), tag='!A')
        with pytest.raises(ConstructorError):
            tagcodec.deserialize(node, registry)

    def test_non_scalar_field_name(self, registry):
        node = MappingNode('!A', [(seq(), scalar('1'))])
        with pytest.raises(ConstructorError):
            tagcodec.deserialize(node, registry)

    def test_open_field_set(self):
        registry = TypeRegistry()
        registry.register('Bag', TypeDescriptor(None, dict))
        node = mapping(('anything', scalar('1')), tag='!Bag')
        assert tagcodec.deserialize(node, registry) == {'anything': 1}

    def test_unhashable_key(self):
        node = mapping(('a', MappingNode(None, [(seq(scalar('1')), scalar('x'))])))
        with pytest.raises(UnhashableKeyError) as excinfo:
            tagcodec.deserialize(node)
        assert excinfo.value.path == ['a', '<sequence key>']

    def test_tagged_key_building_unhashable_value(self):
        registry = TypeRegistry()
        registry.register('L', TypeDescriptor(None, lambda value: [value], kind=SCALAR))
        node = MappingNode(None, [(scalar('k', tag='!L'), scalar('1'))])
        with pytest.raises(UnhashableKeyError):
            tagcodec.deserialize(node, registry)


# ── Validation before construction ───────────────────────────────────

class TestValidationFirst:

    @pytest.fixture
    def built(self):
        return []

    @pytest.fixture
    def tracking_registry(self, built):
        def build(fields):
            built.append(fields)
            return fields

        registry = TypeRegistry()
        registry.register('T', TypeDescriptor(None, build, field_names=['x']))
        return registry

    @pytest.mark.parametrize('bad_node', [
        mapping(tag='!Unknown'),
        alias('missing'),
        mapping(tag='!T'),
        mapping(('x', scalar('1')), ('y', scalar('2')), tag='!T'),
    ])
    def test_no_build_before_error(self, tracking_registry, built, bad_node):
        node = seq(mapping(('x', scalar('1')), tag='!T'), bad_node)
        with pytest.raises(tagcodec.MarkedCodecError) as excinfo:
            tagcodec.deserialize(node, tracking_registry)
        assert excinfo.value.path[0] == 1
        assert built == []

    def test_depth_limit(self):
        node = seq(seq(seq(scalar('1'))))
        with pytest.raises(DepthLimitError) as excinfo:
            tagcodec.deserialize(node, max_depth=1)
        assert excinfo.value.path == [0, 0]
        assert tagcodec.deserialize(node, max_depth=3) == [[[1]]]


# ── Constructor instances ────────────────────────────────────────────

class TestConstructorState:

    def test_reusable_after_failure(self, registry):
        constructor = Constructor(registry)
        with pytest.raises(UndefinedAnchorError):
            constructor.construct_document(seq(alias('a')))
        node = seq(scalar('1', anchor='a'), alias('a'))
        assert constructor.construct_document(node) == [1, 1]

    def test_anchors_do_not_leak_between_calls(self, registry):
        constructor = Constructor(registry)
        constructor.construct_document(scalar('1', anchor='a'))
        with pytest.raises(UndefinedAnchorError):
            constructor.construct_document(alias('a'))

    def test_invalid_strictness(self, registry):
        with pytest.raises(ValueError):
            Constructor(registry, strictness='loose')
