"""Scalar typing for untagged nodes and the core scalar constructors.

Untagged plain scalars are typed from their lexical form using the YAML 1.2
core schema (null, bool, int, float, otherwise str). Quoted scalars are
always strings. The construct_* functions turn scalar text into Python
values; they also back the standard registry's !!null, !!int, ... tags.
"""

import base64
import binascii
import datetime
import re


NULL_TAG = 'tag:yaml.org,2002:null'
BOOL_TAG = 'tag:yaml.org,2002:bool'
INT_TAG = 'tag:yaml.org,2002:int'
FLOAT_TAG = 'tag:yaml.org,2002:float'
STR_TAG = 'tag:yaml.org,2002:str'
BINARY_TAG = 'tag:yaml.org,2002:binary'
TIMESTAMP_TAG = 'tag:yaml.org,2002:timestamp'
SEQ_TAG = 'tag:yaml.org,2002:seq'
MAP_TAG = 'tag:yaml.org,2002:map'
SET_TAG = 'tag:yaml.org,2002:set'
OMAP_TAG = 'tag:yaml.org,2002:omap'
PAIRS_TAG = 'tag:yaml.org,2002:pairs'
TUPLE_TAG = 'tag:yaml.org,2002:python/tuple'


# first character -> [(tag, regexp)], None holds resolvers for any character
implicit_resolvers = {}


def add_implicit_resolver(tag, regexp, first):
    """Add an implicit resolver for plain scalars starting with one of `first`."""
    if first is None:
        first = [None]
    for ch in first:
        implicit_resolvers.setdefault(ch, []).append((tag, regexp))


def resolve_scalar_tag(value):
    """Return the core-schema tag a plain scalar with this text resolves to."""
    for ch in [value[0] if value else '', None]:
        for tag, regexp in implicit_resolvers.get(ch, ()):
            if regexp.match(value):
                return tag
    return STR_TAG


add_implicit_resolver(
    NULL_TAG,
    re.compile(r'^(?:~|null|Null|NULL|)$'),
    ['~', 'n', 'N', ''])
add_implicit_resolver(
    BOOL_TAG,
    re.compile(r'^(?:true|True|TRUE|false|False|FALSE)$'),
    list('tTfF'))
add_implicit_resolver(
    INT_TAG,
    re.compile(r'^(?:[-+]?[0-9]+|0o[0-7]+|0x[0-9a-fA-F]+)$'),
    list('-+0123456789'))
add_implicit_resolver(
    FLOAT_TAG,
    re.compile(r'''^(?:[-+]?(?:\.[0-9]+|[0-9]+(?:\.[0-9]*)?)(?:[eE][-+]?[0-9]+)?
                |[-+]?\.(?:inf|Inf|INF)
                |\.(?:nan|NaN|NAN))$''', re.X),
    list('-+.0123456789'))


def construct_null(value=''):
    return None


def construct_bool(value=''):
    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off', ''):
        return False
    raise ValueError("invalid boolean %r" % value)


def construct_int(value='0'):
    # Handle various integer formats
    value = value.replace('_', '')
    sign = 1
    if value.startswith('-'):
        sign = -1
        value = value[1:]
    elif value.startswith('+'):
        value = value[1:]
    if value == '0':
        return 0
    elif value.startswith('0x') or value.startswith('0X'):
        return sign * int(value[2:], 16)
    elif value.startswith('0b') or value.startswith('0B'):
        return sign * int(value[2:], 2)
    elif value.startswith('0o') or value.startswith('0O'):
        return sign * int(value[2:], 8)
    else:
        return sign * int(value)


def construct_float(value='0'):
    value = value.replace('_', '').lower()
    if value in ('.inf', '+.inf'):
        return float('inf')
    elif value == '-.inf':
        return float('-inf')
    elif value == '.nan':
        return float('nan')
    return float(value)


def construct_str(value=''):
    return value


def construct_binary(value=''):
    value = value.replace('\n', '').replace('\r', '').replace(' ', '')
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValueError("failed to decode base64 data: %s" % exc) from exc


_DATE_REGEXP = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')

_TIMESTAMP_REGEXP = re.compile(
    r'^(\d{4})-(\d{1,2})-(\d{1,2})'
    r'[Tt\s]+(\d{1,2}):(\d{2}):(\d{2})'
    r'(?:\.(\d+))?'
    r'(?:\s*(Z|[-+]\d{1,2}(?::\d{2})?))?$')


def construct_timestamp(value):
    match = _DATE_REGEXP.match(value)
    if match:
        return datetime.date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    match = _TIMESTAMP_REGEXP.match(value)
    if match is None:
        raise ValueError("invalid timestamp %r" % value)
    year, month, day = int(match.group(1)), int(match.group(2)), int(match.group(3))
    hour, minute, second = int(match.group(4)), int(match.group(5)), int(match.group(6))
    fraction = 0
    if match.group(7):
        fraction = int(match.group(7)[:6].ljust(6, '0'))
    tz = None
    if match.group(8):
        if match.group(8) == 'Z':
            tz = datetime.timezone.utc
        else:
            tz_str = match.group(8)
            tz_sign = -1 if tz_str[0] == '-' else 1
            parts = tz_str[1:].split(':')
            tz_hour = int(parts[0])
            tz_min = int(parts[1]) if len(parts) > 1 else 0
            tz = datetime.timezone(datetime.timedelta(
                hours=tz_sign * tz_hour, minutes=tz_sign * tz_min))
    return datetime.datetime(year, month, day, hour, minute, second, fraction, tz)


CORE_SCALAR_TAGS = {
    NULL_TAG: construct_null,
    BOOL_TAG: construct_bool,
    INT_TAG: construct_int,
    FLOAT_TAG: construct_float,
    STR_TAG: construct_str,
}

# Scalar tags whose lexical forms are compared by value.
VALUE_SCALAR_TAGS = dict(CORE_SCALAR_TAGS)
VALUE_SCALAR_TAGS[BINARY_TAG] = construct_binary
VALUE_SCALAR_TAGS[TIMESTAMP_TAG] = construct_timestamp


def construct_implicit(value, plain=True):
    """Construct the native value of an untagged scalar."""
    if not plain:
        return value
    return CORE_SCALAR_TAGS[resolve_scalar_tag(value)](value)


def represent_float(data):
    if data != data:
        return '.nan'
    if data == float('inf'):
        return '.inf'
    if data == float('-inf'):
        return '-.inf'
    return repr(data)


def represent_timestamp(data):
    if isinstance(data, datetime.datetime):
        if data.tzinfo is not None:
            return data.isoformat()
        value = data.strftime('%Y-%m-%d %H:%M:%S')
        if data.microsecond:
            value += '.%06d' % data.microsecond
        return value
    return data.isoformat()


def represent_binary(data):
    return base64.standard_b64encode(data).decode('ascii')
