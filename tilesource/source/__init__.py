from collections import namedtuple
from enum import Enum

from tilesource.errors import ConfigurationError
from tilesource.errors import MultipleSourcesError
from tilesource.errors import NoSourcesError
from tilesource.source.common import default_fetch_settings


class SourceType(Enum):
    ELASTICSEARCH = 'elasticsearch'
    POSTGIS = 'postgis'


# exactly one backend, with its own options
SourceConfig = namedtuple('SourceConfig', 'source_type options')


def parse_source_config(source_yaml, layer_name=None):
    """
    Resolve the source section of a layer config to a single backend.

    The section is keyed by backend type; exactly one known backend must be
    set.
    """

    if source_yaml is None:
        raise NoSourcesError(layer_name)
    if not isinstance(source_yaml, dict):
        raise ConfigurationError(
            'Invalid source config for layer: %s' % layer_name)

    known_types = set(t.value for t in SourceType)
    unknown = sorted(k for k in source_yaml if k not in known_types)
    if unknown:
        raise ConfigurationError(
            'Unknown source type(s) %s for layer: %s' %
            (', '.join(unknown), layer_name))

    configured = [t for t in SourceType
                  if source_yaml.get(t.value) is not None]
    if len(configured) > 1:
        raise MultipleSourcesError(layer_name, [t.value for t in configured])
    if not configured:
        raise NoSourcesError(layer_name)

    source_type = configured[0]
    options = source_yaml[source_type.value]
    if not isinstance(options, dict):
        raise ConfigurationError(
            'Expecting %s source config to be a mapping for layer: %s' %
            (source_type.value, layer_name))
    return SourceConfig(source_type, options)


def make_source(source_cfg, fetch_settings=None):
    if fetch_settings is None:
        fetch_settings = default_fetch_settings()

    if source_cfg.source_type is SourceType.ELASTICSEARCH:
        from tilesource.source.es import make_elasticsearch_source
        return make_elasticsearch_source(source_cfg.options, fetch_settings)

    elif source_cfg.source_type is SourceType.POSTGIS:
        from tilesource.source.postgis import make_postgis_source
        return make_postgis_source(source_cfg.options, fetch_settings)

    raise ConfigurationError(
        'Source type %r not understood' % (source_cfg.source_type,))
