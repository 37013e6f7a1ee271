import argparse
import logging
import logging.config
import os
import sys

from tilesource.config import make_config_from_argparse
from tilesource.context import FetchContext
from tilesource.context import background_context
from tilesource.errors import ConfigurationError
from tilesource.errors import TileSourceError
from tilesource.format.geojson import encode_feature_collection
from tilesource.format.geojson import encode_multiple_layers
from tilesource.layer import make_layer
from tilesource.layer import parse_layer_configs
from tilesource.log import JsonFetchLogger
from tilesource.log import format_stacktrace_one_line
from tilesource.stats import FetchStatsHandler
from tilesource.stats import make_statsd_client_from_cfg
from tilesource.stats import time_block
from tilesource.tile import deserialize_coord


def make_logger(cfg, logger_name, loglevel=logging.INFO):
    if getattr(cfg, 'logconfig') is not None:
        logging.config.fileConfig(cfg.logconfig)
    else:
        logging.basicConfig(stream=sys.stderr)
    logger = logging.getLogger(logger_name)
    logger.setLevel(loglevel)
    return logger


class TileArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        sys.stderr.write('error: %s\n' % message)
        self.print_help()
        sys.exit(2)


def _select_layer_cfgs(cfg, layer_names):
    layer_cfgs = parse_layer_configs(cfg.layers_yaml)
    if not layer_names:
        return layer_cfgs
    by_name = dict((x.name, x) for x in layer_cfgs)
    selected = []
    for name in layer_names:
        if name not in by_name:
            raise ConfigurationError('Unknown layer: %s' % name)
        selected.append(by_name[name])
    return selected


def make_request_context(request_timeout_seconds):
    if request_timeout_seconds is None:
        # only the per page timeouts bound the fetch
        return background_context()
    return FetchContext.with_timeout(request_timeout_seconds)


def fetch_layer_features(layer, ctx, tile_request, fetch_logger,
                         stats_handler):
    """
    Fetch the features of one layer for a tile, logging the outcome.

    Tiles outside of the layer's zoom range have no features.
    """

    if not layer.includes_zoom(tile_request.zoom):
        return []

    timing = {}
    try:
        with time_block(timing, 'fetch'):
            features = layer.get_features(ctx, tile_request)
    except TileSourceError as e:
        stacktrace = format_stacktrace_one_line()
        fetch_logger.fetch_error(e, stacktrace, tile_request, layer.name)
        stats_handler.fetch_error(layer.name)
        raise

    mode = 'aggregate' if getattr(layer.source, 'aggs', None) else 'features'
    fetch_logger.log_fetched(
        layer.name, tile_request, len(features), timing, mode)
    stats_handler.fetched(layer.name, len(features), timing)
    return features


def tilesource_layers(cfg, args):
    logger = make_logger(cfg, 'layers')
    fetch_logger = JsonFetchLogger(logger)

    try:
        layer_cfgs = _select_layer_cfgs(cfg, args.layer)
        layers = [make_layer(x, cfg.fetch_settings()) for x in layer_cfgs]
    except TileSourceError as e:
        fetch_logger.error('Invalid layer configuration', e,
                           format_stacktrace_one_line())
        return 1

    for layer in layers:
        print('%s\tz%d-%d\t%s\t%s' % (
            layer.name, layer.minzoom, layer.maxzoom,
            layer.source_type.value, layer.description))
    fetch_logger.lifecycle('%d layer(s) ok' % len(layers))
    return 0


def tilesource_fetch(cfg, args):
    logger = make_logger(cfg, 'fetch')
    fetch_logger = JsonFetchLogger(logger)
    stats_handler = FetchStatsHandler(make_statsd_client_from_cfg(cfg))

    tile_request = deserialize_coord(args.tile)
    if tile_request is None:
        fetch_logger.error('Invalid tile coordinate: %s' % args.tile, None,
                           None)
        return 2

    try:
        layer_cfgs = _select_layer_cfgs(cfg, args.layer)
        layers = [make_layer(x, cfg.fetch_settings()) for x in layer_cfgs]
    except TileSourceError as e:
        fetch_logger.error('Invalid layer configuration', e,
                           format_stacktrace_one_line(), tile_request)
        return 1

    features_by_layer = {}
    for layer in layers:
        ctx = make_request_context(cfg.request_timeout_seconds)
        try:
            features_by_layer[layer.name] = fetch_layer_features(
                layer, ctx, tile_request, fetch_logger, stats_handler)
        except TileSourceError:
            return 1

    out = sys.stdout
    if len(layers) == 1:
        encode_feature_collection(
            out, features_by_layer[layers[0].name], tile_request.zoom,
            cfg.geojson_precision)
    else:
        encode_multiple_layers(
            out, features_by_layer, tile_request.zoom,
            cfg.geojson_precision)
    out.write('\n')
    return 0


def tilesource_main(argv_args=None):
    if argv_args is None:
        argv_args = sys.argv[1:]

    parser = TileArgumentParser()
    subparsers = parser.add_subparsers(dest='command')
    subparsers.required = True

    subparser = subparsers.add_parser(
        'layers', help='Build the configured layers and list them.')
    subparser.add_argument('--config', required=True,
                           help='The path to the tilesource config file.')
    subparser.add_argument('--layer', action='append', default=[],
                           help='Only check the named layer. Repeatable.')
    subparser.set_defaults(func=tilesource_layers)

    subparser = subparsers.add_parser(
        'fetch', help='Write the features of a tile as GeoJSON.')
    subparser.add_argument('--config', required=True,
                           help='The path to the tilesource config file.')
    subparser.add_argument('--layer', action='append', default=[],
                           help='Only fetch the named layer. Repeatable.')
    subparser.add_argument('--page-size', type=int, required=False,
                           help='Override the number of documents per page.')
    subparser.add_argument('--timeout', type=float, required=False,
                           help='Override the overall request timeout, in '
                                'seconds.')
    subparser.add_argument('tile', help='Tile coordinate as "z/x/y".')
    subparser.set_defaults(func=tilesource_fetch)

    args = parser.parse_args(argv_args)
    assert os.path.exists(args.config), \
        'Config file {} does not exist!'.format(args.config)
    with open(args.config) as fh:
        cfg = make_config_from_argparse(
            fh,
            page_size=getattr(args, 'page_size', None),
            request_timeout_seconds=getattr(args, 'timeout', None))
    return args.func(cfg, args)


def main():
    sys.exit(tilesource_main())
