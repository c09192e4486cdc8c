"""Tag to type registry.

A TypeRegistry maps tags to TypeDescriptors. Registries are plain objects
passed into each deserialization or serialization call; there is no global
table. TypeRegistry.standard() composes the core YAML tags into a fresh
registry.

Tags are normalized before use: a bare name such as ``Point`` is the local
tag ``!Point``, URI tags (``tag:yaml.org,2002:int``) and local tags are kept
as they are.

In safe mode only registered tags resolve. In unsafe mode an unregistered
tag is handed to the registry's type resolver, a callable from tag to
TypeDescriptor. The default, import_type_resolver, imports the type named by
the tag, which can run arbitrary module-level code and constructors.
"""

import builtins
import dataclasses
import datetime
import importlib
import inspect
import logging
import threading

from tagcodec import scalars
from tagcodec.error import CodecError, MarkedCodecError


log = logging.getLogger(__name__)

SAFE = 'safe'
UNSAFE = 'unsafe'
MODES = (SAFE, UNSAFE)

STRICT = 'strict'
LENIENT = 'lenient'
STRICTNESS = (STRICT, LENIENT)

SCALAR = 'scalar'
SEQUENCE = 'sequence'
MAPPING = 'mapping'
PAIRS = 'pairs'
KINDS = (SCALAR, SEQUENCE, MAPPING, PAIRS, None)

PYTHON_OBJECT_PREFIX = 'tag:yaml.org,2002:python/object:'


class RegistryError(CodecError):
    pass


class DuplicateTagError(RegistryError):
    """A tag was registered twice in a strict registry."""

    def __init__(self, tag):
        super().__init__("tag %r is already registered" % tag)
        self.tag = tag


class ResolutionError(MarkedCodecError):
    """A tag could not be resolved to a type descriptor."""
    pass


class UnknownTagError(ResolutionError):
    pass


class UnresolvableTypeError(ResolutionError):
    pass


def check_mode(mode):
    if mode not in MODES:
        raise ValueError("invalid mode %r, expected one of %s" % (mode, ', '.join(MODES)))
    return mode


def check_strictness(strictness):
    if strictness not in STRICTNESS:
        raise ValueError("invalid strictness %r, expected one of %s"
                         % (strictness, ', '.join(STRICTNESS)))
    return strictness


def normalize_tag(tag):
    """Return the canonical registry key for `tag`."""
    if not tag:
        raise ValueError("empty tag")
    if tag.startswith('!') or ':' in tag:
        return tag
    return '!' + tag


def tag_from_class_name(cls):
    """Default naming convention: the local tag ``!ClassName``."""
    return '!' + cls.__name__


def qualified_tag(cls):
    """Naming convention using the module-qualified name, ``!pkg.mod.Class``."""
    return '!%s.%s' % (cls.__module__, cls.__qualname__)


def type_name_from_tag(tag):
    """Strip tag decorations, leaving the type name an unsafe lookup imports."""
    if tag.startswith(PYTHON_OBJECT_PREFIX):
        return tag[len(PYTHON_OBJECT_PREFIX):]
    if tag.startswith('!') and not tag.startswith('!!'):
        return tag[1:]
    return tag


class TypeDescriptor:
    """How to build (and represent) objects of one tag.

    Attributes:
        tag: Normalized tag, or None until the descriptor is registered
        build: Callable creating the object. Mapping descriptors receive a
            dict of field name to value, sequence descriptors a list,
            scalar descriptors the scalar text (or nothing for an empty
            plain scalar), pairs descriptors a list of (key, value) tuples.
            A descriptor of kind None accepts any node and gets whichever
            of these matches the node.
        field_names: Ordered field names of a mapping descriptor, or None
            when any field name is accepted
        required: Field names that must be present
        kind: One of 'scalar', 'sequence', 'mapping', 'pairs' or None
        type: Host class, used by the serializer for reverse lookup
        assign: Called as assign(obj, name, value) to patch a field once a
            recursive reference is complete
    """

    def __init__(self, tag, build, field_names=None, required=None, kind=MAPPING,
                 type=None, represent=None, assign=setattr):
        if kind not in KINDS:
            raise ValueError("invalid descriptor kind %r" % (kind,))
        if not callable(build):
            raise RegistryError("descriptor build for %r is not callable" % (tag,))
        self.tag = normalize_tag(tag) if tag is not None else None
        self.build = build
        self.field_names = tuple(field_names) if field_names is not None else None
        if required is None:
            required = self.field_names or ()
        self.required = frozenset(required)
        if self.field_names is not None and not self.required <= set(self.field_names):
            raise RegistryError("required fields %s of %r are not declared"
                                % (sorted(self.required - set(self.field_names)), tag))
        self.kind = kind
        self.type = type
        self.assign = assign
        self._represent = represent

    def __repr__(self):
        return 'TypeDescriptor(%r, kind=%r, fields=%r)' % (self.tag, self.kind, self.field_names)

    def with_tag(self, tag):
        clone = TypeDescriptor.__new__(TypeDescriptor)
        clone.__dict__.update(self.__dict__)
        clone.tag = normalize_tag(tag)
        return clone

    def accepts(self, node_id):
        """Check whether nodes of kind `node_id` ('scalar', ...) can be built."""
        if self.kind is None:
            return True
        if self.kind == PAIRS:
            return node_id == MAPPING
        return self.kind == node_id

    def represent(self, data):
        """Inverse of build: fields dict, item list, scalar text or pairs."""
        if self._represent is not None:
            return self._represent(data)
        if self.kind == SCALAR:
            return str(data)
        if self.kind == SEQUENCE:
            return list(data)
        if self.kind == PAIRS:
            if hasattr(data, 'items'):
                return list(data.items())
            return [(item, None) for item in data]
        if self.field_names is None:
            return dict(vars(data))
        return {name: getattr(data, name) for name in self.field_names}


def descriptor_from_type(cls, tag=None, build=None, represent=None):
    """Derive a mapping descriptor from a class.

    Dataclass fields (or the parameters of ``__init__``) become the field
    names; the ones without a default are required. Classes accepting
    ``**kwargs`` get an open field set.
    """
    assign = setattr
    if dataclasses.is_dataclass(cls):
        fields = [f for f in dataclasses.fields(cls) if f.init]
        field_names = [f.name for f in fields]
        required = [f.name for f in fields
                    if f.default is dataclasses.MISSING
                    and f.default_factory is dataclasses.MISSING]
        if cls.__dataclass_params__.frozen:
            assign = object.__setattr__
    else:
        field_names, required = _signature_fields(cls)
    return TypeDescriptor(tag, build or (lambda fields: cls(**fields)),
                          field_names=field_names, required=required,
                          kind=MAPPING, type=cls, represent=represent, assign=assign)


def _signature_fields(cls):
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return None, ()
    field_names = []
    required = []
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_KEYWORD:
            return None, required
        if parameter.kind in (inspect.Parameter.VAR_POSITIONAL,
                              inspect.Parameter.POSITIONAL_ONLY):
            continue
        field_names.append(parameter.name)
        if parameter.default is inspect.Parameter.empty:
            required.append(parameter.name)
    return field_names, required


_NO_VALUE = object()


def import_type_resolver(tag):
    """Resolve an unregistered tag by importing the type it names.

    ``!pkg.mod.Widget``, ``pkg.mod.Widget`` and
    ``tag:yaml.org,2002:python/object:pkg.mod.Widget`` all name
    ``pkg.mod.Widget``; a bare name is looked up in builtins. The returned
    descriptor accepts any node: mappings become keyword arguments,
    sequences positional arguments, scalars a single argument.
    """
    name = type_name_from_tag(tag)
    cls = _import_type(name, tag)
    log.info("resolved tag %r to %s.%s by import", tag, cls.__module__, cls.__qualname__)

    def build(value=_NO_VALUE):
        if value is _NO_VALUE:
            return cls()
        if isinstance(value, dict):
            return cls(**value)
        if isinstance(value, list):
            return cls(*value)
        return cls(value)

    return TypeDescriptor(tag, build, kind=None, type=cls)


def _import_type(name, tag):
    context = "while resolving the tag %r" % tag
    if not name or name.startswith('.') or name.endswith('.'):
        raise UnresolvableTypeError(context, None, "invalid type name %r" % name)
    if '.' not in name:
        if not hasattr(builtins, name):
            raise UnresolvableTypeError(
                context, None, "expected a module name separated by '.' or a builtin, "
                "but found %r" % name)
        cls = getattr(builtins, name)
    else:
        module_name, attr_name = name.rsplit('.', 1)
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise UnresolvableTypeError(
                context, None, "cannot find module %r (%s)" % (module_name, exc)) from exc
        if not hasattr(module, attr_name):
            raise UnresolvableTypeError(
                context, None, "module %r has no attribute %r" % (module_name, attr_name))
        cls = getattr(module, attr_name)
    if not isinstance(cls, type):
        raise UnresolvableTypeError(context, None, "%r is not a type" % name)
    return cls


class TypeRegistry:
    """Mapping from tag to TypeDescriptor.

    Args:
        strict: Reject registering a tag twice (DuplicateTagError). Lenient
            registries let the last registration win.
        naming: Convention deriving a tag from a class for register_type
            when no tag is given (default: ``!ClassName``)
        type_resolver: Unsafe-mode fallback for unregistered tags
            (default: import_type_resolver)

    Registration is meant to happen before the registry is shared between
    threads; freeze() turns it into a read-only snapshot.
    """

    def __init__(self, strict=True, naming=None, type_resolver=None):
        self.strict = strict
        self.naming = naming or tag_from_class_name
        self.type_resolver = type_resolver or import_type_resolver
        self._descriptors = {}
        self._prefixes = {}
        self._types = {}
        self._lock = threading.Lock()
        self._frozen = False

    @classmethod
    def standard(cls, **kwargs):
        """Create a registry holding the core tags."""
        registry = cls(**kwargs)
        for tag, build in scalars.CORE_SCALAR_TAGS.items():
            registry.register(tag, TypeDescriptor(tag, build, kind=SCALAR))
        registry.register(scalars.BINARY_TAG, TypeDescriptor(
            scalars.BINARY_TAG, scalars.construct_binary, kind=SCALAR,
            type=bytes, represent=scalars.represent_binary))
        registry.register(scalars.TIMESTAMP_TAG, TypeDescriptor(
            scalars.TIMESTAMP_TAG, scalars.construct_timestamp, kind=SCALAR,
            type=datetime.date, represent=scalars.represent_timestamp))
        registry.register(scalars.SET_TAG, TypeDescriptor(
            scalars.SET_TAG, _build_set, kind=PAIRS, type=set))
        registry.register(scalars.OMAP_TAG, TypeDescriptor(
            scalars.OMAP_TAG, OrderedPairs.from_items, kind=SEQUENCE,
            type=OrderedPairs, represent=_represent_pairs))
        registry.register(scalars.PAIRS_TAG, TypeDescriptor(
            scalars.PAIRS_TAG, Pairs.from_items, kind=SEQUENCE,
            type=Pairs, represent=_represent_pairs))
        registry.register(scalars.TUPLE_TAG, TypeDescriptor(
            scalars.TUPLE_TAG, tuple, kind=SEQUENCE, type=tuple))
        return registry

    @property
    def frozen(self):
        return self._frozen

    def freeze(self):
        """Make the registry read-only and return it."""
        self._frozen = True
        return self

    def _check_mutable(self):
        if self._frozen:
            raise RegistryError("registry is frozen")

    def register(self, tag, descriptor):
        """Register `descriptor` under `tag`."""
        tag = normalize_tag(tag)
        if descriptor.tag != tag:
            descriptor = descriptor.with_tag(tag)
        with self._lock:
            self._check_mutable()
            previous = self._descriptors.get(tag)
            if previous is not None:
                if self.strict:
                    raise DuplicateTagError(tag)
                log.debug("replacing descriptor for tag %r", tag)
            self._descriptors[tag] = descriptor
            if descriptor.type is not None:
                canonical = self._types.get(descriptor.type)
                if canonical is None or canonical.tag == tag:
                    self._types[descriptor.type] = descriptor
            if previous is not None and previous.type is not None \
                    and self._types.get(previous.type) is previous:
                del self._types[previous.type]
        log.debug("registered tag %r", tag)
        return descriptor

    def register_type(self, cls=None, tag=None, build=None, represent=None):
        """Register a class under `tag` or the tag its name yields.

        May be used as a plain call or as a class decorator, with or
        without arguments.
        """
        def decorator(cls):
            descriptor = descriptor_from_type(cls, build=build, represent=represent)
            self.register(tag if tag is not None else self.naming(cls), descriptor)
            return cls

        if cls is None:
            return decorator
        return decorator(cls)

    def register_prefix(self, prefix, factory):
        """Resolve every tag starting with `prefix` through factory(suffix)."""
        prefix = normalize_tag(prefix)
        with self._lock:
            self._check_mutable()
            if prefix in self._prefixes and self.strict:
                raise DuplicateTagError(prefix)
            self._prefixes[prefix] = factory

    def resolve(self, tag, mode=SAFE, type_resolver=None):
        """Return the descriptor for `tag`.

        Raises UnknownTagError for unregistered tags in safe mode and
        UnresolvableTypeError when the unsafe-mode lookup fails.
        """
        check_mode(mode)
        key = normalize_tag(tag)
        descriptor = self._descriptors.get(key)
        if descriptor is not None:
            return descriptor
        for prefix, factory in self._prefixes.items():
            if key.startswith(prefix):
                descriptor = factory(key[len(prefix):])
                if descriptor.tag != key:
                    descriptor = descriptor.with_tag(key)
                return descriptor
        if mode == SAFE:
            raise UnknownTagError(
                None, None, "could not determine a constructor for the tag %r" % tag)
        log.info("tag %r is not registered, falling back to dynamic lookup", tag)
        descriptor = (type_resolver or self.type_resolver)(key)
        if descriptor is None:
            raise UnresolvableTypeError(
                "while resolving the tag %r" % tag, None, "type resolver found no type")
        return descriptor

    def descriptor_for(self, data_type):
        """Return the descriptor registered for `data_type` (or a base), or None."""
        descriptor = self._types.get(data_type)
        if descriptor is not None:
            return descriptor
        for base in data_type.__mro__[1:]:
            descriptor = self._types.get(base)
            if descriptor is not None:
                return descriptor
        return None

    def copy(self):
        """Return an unfrozen copy sharing the descriptors."""
        registry = TypeRegistry(self.strict, self.naming, self.type_resolver)
        with self._lock:
            registry._descriptors = dict(self._descriptors)
            registry._prefixes = dict(self._prefixes)
            registry._types = dict(self._types)
        return registry

    def update(self, other):
        """Register every tag of `other` in this registry."""
        for tag in other:
            self.register(tag, other._descriptors[tag])
        with other._lock:
            prefixes = dict(other._prefixes)
        for prefix, factory in prefixes.items():
            self.register_prefix(prefix, factory)

    def tags(self):
        return list(self._descriptors)

    def __contains__(self, tag):
        return normalize_tag(tag) in self._descriptors

    def __iter__(self):
        return iter(list(self._descriptors))

    def __len__(self):
        return len(self._descriptors)

    def __repr__(self):
        return '<TypeRegistry %d tags%s>' % (len(self), ', frozen' if self._frozen else '')


def _build_set(pairs):
    return set(key for key, value in pairs)


class Pairs(list):
    """List of (key, value) tuples read from a !!pairs sequence.

    Keys may repeat. The class is what tells the serializer to write the
    list back as a sequence of single-pair mappings.
    """

    @classmethod
    def from_items(cls, items):
        pairs = cls()
        for item in items:
            if not isinstance(item, dict) or len(item) != 1:
                raise ValueError("expected a single-pair mapping, but found %r" % (item,))
            pairs.extend(item.items())
        return pairs


class OrderedPairs(Pairs):
    """List of (key, value) tuples read from a !!omap sequence."""
    pass


def _represent_pairs(pairs):
    return [{key: value} for key, value in pairs]
