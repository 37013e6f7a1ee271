from collections import namedtuple

from tilesource.errors import ConfigurationError
from tilesource.errors import SourceConnectionError
from tilesource.source import make_source
from tilesource.source import parse_source_config


MAX_ZOOM = 22

LayerConfig = namedtuple(
    'LayerConfig', 'name description minzoom maxzoom source')


class Layer:

    """A named source of features, served over a range of zooms"""

    def __init__(self, name, description, minzoom, maxzoom, source,
                 source_type=None):
        self.name = name
        self.description = description
        self.minzoom = minzoom
        self.maxzoom = maxzoom
        self.source = source
        self.source_type = source_type

    def __repr__(self):
        return 'Layer(%s, z%d-%d)' % (self.name, self.minzoom, self.maxzoom)

    def includes_zoom(self, zoom):
        # both ends are inclusive
        return self.minzoom <= zoom <= self.maxzoom

    def get_features(self, ctx, tile_request):
        return self.source.get_features(ctx, tile_request)


def _zoom(layer_yaml, key, default):
    value = layer_yaml.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            'Invalid %s for layer %s: %r' %
            (key, layer_yaml.get('name'), value))


def parse_layer_config(layer_yaml):
    if not isinstance(layer_yaml, dict):
        raise ConfigurationError('Invalid layer config: %r' % (layer_yaml,))
    name = layer_yaml.get('name')
    if not name:
        raise ConfigurationError('Layers must have a name')
    return LayerConfig(
        name=name,
        description=layer_yaml.get('description') or '',
        minzoom=_zoom(layer_yaml, 'minzoom', 0),
        maxzoom=_zoom(layer_yaml, 'maxzoom', MAX_ZOOM),
        source=layer_yaml.get('source'),
    )


def parse_layer_configs(layers_yaml):
    if not layers_yaml:
        raise ConfigurationError('No layers configured')
    layer_cfgs = [parse_layer_config(x) for x in layers_yaml]
    names = set()
    for layer_cfg in layer_cfgs:
        if layer_cfg.name in names:
            raise ConfigurationError(
                'Duplicate layer name: %s' % layer_cfg.name)
        names.add(layer_cfg.name)
    return layer_cfgs


def make_layer(layer_cfg, fetch_settings=None):
    """
    Create a Layer from a LayerConfig.

    Exactly one backend source must be configured; NoSourcesError or
    MultipleSourcesError is raised otherwise. Errors creating the source
    itself, including failing to reach the backend, are raised with the layer
    name attached.
    """

    name = layer_cfg.name
    if not (0 <= layer_cfg.minzoom <= layer_cfg.maxzoom):
        raise ConfigurationError(
            'Invalid zoom range %s-%s for layer: %s' %
            (layer_cfg.minzoom, layer_cfg.maxzoom, name))

    source_cfg = parse_source_config(layer_cfg.source, name)

    try:
        source = make_source(source_cfg, fetch_settings)
    except SourceConnectionError as e:
        raise SourceConnectionError(
            'Failed to connect source for layer %s: %s' % (name, e)) from e
    except ConfigurationError as e:
        raise ConfigurationError(
            'Invalid source config for layer %s: %s' % (name, e)) from e

    return Layer(name, layer_cfg.description, layer_cfg.minzoom,
                 layer_cfg.maxzoom, source, source_cfg.source_type)


def make_layers(layers_yaml, fetch_settings=None):
    layer_cfgs = parse_layer_configs(layers_yaml)
    return [make_layer(x, fetch_settings) for x in layer_cfgs]
