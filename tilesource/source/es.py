from elasticsearch import ApiError
from elasticsearch import ConnectionTimeout
from elasticsearch import Elasticsearch
from elasticsearch import TransportError
from math import ceil
from shapely.geometry import Point
import logging
import pygeohash

from tilesource.errors import ConfigurationError
from tilesource.errors import FetchTimeoutError
from tilesource.errors import QueryError
from tilesource.errors import SourceConnectionError
from tilesource.source.common import DocumentFeatureMapper
from tilesource.source.common import Feature
from tilesource.source.common import default_fetch_settings


logger = logging.getLogger(__name__)

CELLS_AGG_NAME = 'cells'


def bounds_filter(bounds, geometry_field):
    return {
        'geo_shape': {
            geometry_field: {
                'shape': {
                    'type': 'envelope',
                    'coordinates': [
                        [bounds.left, bounds.top],
                        [bounds.right, bounds.bottom],
                    ],
                },
                'relation': 'intersects',
            },
        },
    }


def bounds_query(bounds, geometry_field):
    return {'bool': {'filter': [bounds_filter(bounds, geometry_field)]}}


def _response_body(response):
    # client responses wrap the decoded json, test doubles are plain dicts
    return getattr(response, 'body', response)


def _client_for(client, ctx):
    request_timeout = ctx.remaining()
    if request_timeout is None:
        return client
    return client.options(request_timeout=request_timeout)


def _query_error(msg, exc):
    if isinstance(exc, ConnectionTimeout):
        return FetchTimeoutError('%s: %s' % (msg, exc))
    return QueryError('%s: %s' % (msg, exc))


class ScrollCursor:

    """Clear the server side scroll context when leaving the with block"""

    def __init__(self, client):
        self.client = client
        self.scroll_id = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.scroll_id is not None:
            try:
                self.client.clear_scroll(scroll_id=self.scroll_id)
            except (ApiError, TransportError) as e:
                # the scroll expires on its own after the keep alive
                logger.warning('Failed to clear scroll %s: %s',
                               self.scroll_id, e)
            self.scroll_id = None
        suppress_exception = False
        return suppress_exception


class ScrollFetcher:

    """
    Page through every document matching the tile bounds.

    Pages are requested one at a time with the scroll api. Each page gets its
    own time budget, derived from the request context, and the scroll is
    cleared however the loop exits.
    """

    def __init__(self, client, index, feature_mapper, page_size,
                 page_timeout):
        self.client = client
        self.index = index
        self.feature_mapper = feature_mapper
        self.page_size = page_size
        self.page_timeout = page_timeout
        self.keep_alive = '%ds' % int(ceil(page_timeout))

    def _next_page(self, page_ctx, cursor, query):
        page_ctx.check()
        client = _client_for(self.client, page_ctx)
        try:
            if cursor.scroll_id is None:
                response = client.search(
                    index=self.index,
                    query=query,
                    size=self.page_size,
                    scroll=self.keep_alive,
                    sort=['_doc'],
                    source_includes=self.feature_mapper.source_paths(),
                )
            else:
                response = client.scroll(
                    scroll_id=cursor.scroll_id, scroll=self.keep_alive)
        except (ApiError, TransportError) as e:
            raise _query_error('Feature query failed', e) from e

        body = _response_body(response)
        cursor.scroll_id = body.get('_scroll_id', cursor.scroll_id)
        return body['hits']['hits']

    def __call__(self, ctx, bounds):
        query = bounds_query(bounds, self.feature_mapper.geometry_field)
        logger.debug('Feature query: %s', query)

        features = []
        with ScrollCursor(self.client) as cursor:
            while True:
                ctx.check()
                with ctx.child(self.page_timeout) as page_ctx:
                    hits = self._next_page(page_ctx, cursor, query)
                if not hits:
                    break
                logger.debug('Scrolling %d hits', len(hits))
                for hit in hits:
                    feature = self.feature_mapper(
                        hit['_id'], hit.get('_source') or {})
                    features.append(feature)
        return features


def cell_centroid(cell_key):
    lat, lng, lat_err, lng_err = pygeohash.decode_exactly(cell_key)
    return Point(lng, lat)


class GeohashGridAggregator:

    """
    Summarise matching documents per geohash cell.

    Every bucket of the grid becomes one point feature at the center of the
    cell, carrying the avg, sum and count of each configured metric. Metrics
    which the bucket doesn't report are left out of the properties.
    """

    def __init__(self, client, index, geometry_field, aggs, request_timeout):
        self.client = client
        self.index = index
        self.geometry_field = geometry_field
        self.aggs = dict(aggs)
        self.request_timeout = request_timeout

    def aggregations(self):
        stats_aggs = {}
        for agg_name, agg_field in self.aggs.items():
            stats_aggs[agg_name] = {'extended_stats': {'field': agg_field}}
        return {
            CELLS_AGG_NAME: {
                'geohash_grid': {'field': self.geometry_field},
                'aggs': stats_aggs,
            },
        }

    def bucket_to_feature(self, bucket):
        cell_key = bucket['key']
        props = {}
        for agg_name in self.aggs:
            stats = bucket.get(agg_name)
            if stats is None:
                continue
            props['%s:avg' % agg_name] = stats.get('avg')
            props['%s:sum' % agg_name] = stats.get('sum')
            props['%s:count' % agg_name] = stats.get('count')
        return Feature(cell_centroid(cell_key), props, cell_key)

    def __call__(self, ctx, bounds):
        ctx.check()
        query = bounds_query(bounds, self.geometry_field)
        aggs = self.aggregations()
        logger.debug('Aggregate query: %s aggs: %s', query, aggs)

        with ctx.child(self.request_timeout) as req_ctx:
            req_ctx.check()
            client = _client_for(self.client, req_ctx)
            try:
                response = client.search(
                    index=self.index, query=query, size=0, aggs=aggs)
            except (ApiError, TransportError) as e:
                raise _query_error('Aggregate query failed', e) from e

        body = _response_body(response)
        cells = (body.get('aggregations') or {}).get(CELLS_AGG_NAME)
        if cells is None:
            return []
        buckets = cells.get('buckets', [])
        logger.debug('Aggregated %d cells', len(buckets))
        return [self.bucket_to_feature(bucket) for bucket in buckets]


class ElasticsearchSource:

    def __init__(self, client, index, geometry_field, source_fields=None,
                 aggs=None, fetch_settings=None):
        if fetch_settings is None:
            fetch_settings = default_fetch_settings()
        self.client = client
        self.index = index
        self.geometry_field = geometry_field
        self.source_fields = dict(source_fields or {})
        self.aggs = dict(aggs or {})

        if self.aggs:
            self.fetch = GeohashGridAggregator(
                client, index, geometry_field, self.aggs,
                fetch_settings.page_timeout)
        else:
            feature_mapper = DocumentFeatureMapper(
                geometry_field, self.source_fields)
            self.fetch = ScrollFetcher(
                client, index, feature_mapper, fetch_settings.page_size,
                fetch_settings.page_timeout)

    def get_features(self, ctx, tile_request):
        if self.aggs:
            logger.debug('Running aggregate query for %s', tile_request)
        else:
            logger.debug('Running hit query for %s', tile_request)
        return self.fetch(ctx, tile_request.bounds)


def _required(source_yaml, key):
    value = source_yaml.get(key)
    if value is None or value == '':
        raise ConfigurationError(
            'Missing elasticsearch source config: %s' % key)
    return value


def _int(source_yaml, key, default):
    value = source_yaml.get(key)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            'Invalid elasticsearch %s: %r' % (key, value))


def _string_mapping(source_yaml, key):
    mapping = source_yaml.get(key) or {}
    if not isinstance(mapping, dict):
        raise ConfigurationError(
            'Expecting elasticsearch %s to be a mapping' % key)
    for k, v in mapping.items():
        if not isinstance(v, str) or not v:
            raise ConfigurationError(
                'Invalid elasticsearch %s entry for %s: %r' % (key, k, v))
    return mapping


def make_elasticsearch_client(host, port, connect_timeout):
    url = 'http://%s:%d' % (host, port)
    try:
        client = Elasticsearch(url, http_compress=True)
    except ValueError as e:
        raise ConfigurationError(
            'Invalid elasticsearch url %s: %s' % (url, e)) from e
    try:
        client.options(request_timeout=connect_timeout).info()
    except (ApiError, TransportError) as e:
        raise SourceConnectionError(
            'Could not connect to elasticsearch at %s: %s' % (url, e)) from e
    return client


def make_elasticsearch_source(source_yaml, fetch_settings=None):
    if fetch_settings is None:
        fetch_settings = default_fetch_settings()

    host = source_yaml.get('host') or 'localhost'
    port = _int(source_yaml, 'port', 9200)
    index = _required(source_yaml, 'index')
    geometry_field = _required(source_yaml, 'geometryField')
    source_fields = _string_mapping(source_yaml, 'sourceFields')
    aggs = _string_mapping(source_yaml, 'aggs')

    client = make_elasticsearch_client(
        host, port, fetch_settings.connect_timeout)
    return ElasticsearchSource(
        client, index, geometry_field, source_fields, aggs, fetch_settings)
