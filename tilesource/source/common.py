from collections import namedtuple
from shapely.errors import ShapelyError
import shapely.geometry
import shapely.wkt
import ujson as json

from tilesource.errors import FieldNotFoundError
from tilesource.errors import GeometryDecodeError


# the same (shape, properties, id) ordering the formatters unpack
Feature = namedtuple('Feature', 'shape properties fid')


def get_nested(something, key_parts):
    """
    Traverse a path of keys in a nested document.

    Returns a (value, found) tuple. Only dicts are traversed; hitting a
    missing key or a value which isn't a dict before the path is used up
    means the path isn't found. An empty path finds the value itself.
    """

    if not key_parts:
        return something, True
    if isinstance(something, dict):
        key = key_parts[0]
        if key in something:
            return get_nested(something[key], key_parts[1:])
    return None, False


def flatten(something, accum, prefix_parts=()):
    """
    Flatten a nested document into accum, a dict of dotted path to scalar.

    List indices become path segments, so {'a': [{'b': 1}]} flattens to
    {'a.0.b': 1}. None values are dropped.
    """

    if something is None:
        return accum
    if isinstance(something, (list, tuple)):
        for i, thing in enumerate(something):
            flatten(thing, accum, prefix_parts + (str(i),))
    elif isinstance(something, dict):
        for key, value in something.items():
            flatten(value, accum, prefix_parts + (key,))
    else:
        accum['.'.join(prefix_parts)] = something
    return accum


def decode_geometry(value):
    # geometries come back either as GeoJSON objects, or as strings holding
    # serialized GeoJSON or WKT
    if isinstance(value, str):
        stripped = value.lstrip()
        if stripped.startswith('{'):
            value = json.loads(stripped)
        else:
            return shapely.wkt.loads(value)
    if not isinstance(value, dict):
        raise ValueError('Unsupported geometry value: %r' % (value,))
    return shapely.geometry.shape(value)


class DocumentFeatureMapper:

    """
    Convert raw backend documents into features.

    geometry_field is a dotted path to the geometry within the document, and
    source_fields maps each output property name to a dotted path. The
    geometry is removed from the document before properties are resolved, so
    it can never leak into the properties.
    """

    def __init__(self, geometry_field, source_fields=None):
        self.geometry_field = geometry_field
        self.geometry_field_parts = geometry_field.split('.')
        self.source_fields = dict(source_fields or {})
        self.source_field_parts = [
            (prop, field_name.split('.'))
            for prop, field_name in self.source_fields.items()
        ]

    def source_paths(self):
        """dotted paths which need to be read from the backend"""
        paths = [self.geometry_field]
        for field_name in self.source_fields.values():
            if field_name not in paths:
                paths.append(field_name)
        return paths

    def __call__(self, doc_id, source):
        parent_parts = self.geometry_field_parts[:-1]
        last_part = self.geometry_field_parts[-1]

        parent, found = get_nested(source, parent_parts)
        if not found or not isinstance(parent, dict) or \
                last_part not in parent:
            raise FieldNotFoundError(self.geometry_field, doc_id)

        # the geometry is popped so that it isn't also sent as a property
        geometry = parent.pop(last_part)
        try:
            shape = decode_geometry(geometry)
        except (ShapelyError, ValueError, TypeError, KeyError,
                AttributeError) as e:
            raise GeometryDecodeError(
                self.geometry_field, doc_id, str(e)) from e

        fid = str(doc_id)
        props = {}
        for prop, key_parts in self.source_field_parts:
            val, found = get_nested(source, key_parts)
            if found:
                props[prop] = val
        props['id'] = fid

        return Feature(shape, props, fid)


# defaults for paging through raw documents
PAGE_SIZE = 250
PAGE_TIMEOUT_SECONDS = 60
CONNECT_TIMEOUT_SECONDS = 30

FetchSettings = namedtuple(
    'FetchSettings', 'page_size page_timeout connect_timeout')


def default_fetch_settings():
    return FetchSettings(
        PAGE_SIZE, PAGE_TIMEOUT_SECONDS, CONNECT_TIMEOUT_SECONDS)
