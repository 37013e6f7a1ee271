from psycopg2 import sql
from psycopg2.extensions import QueryCanceledError
from psycopg2.extras import RealDictCursor
from psycopg2.extras import register_default_jsonb
from psycopg2.extras import register_json
import logging
import psycopg2
import random
import ujson

from tilesource.errors import ConfigurationError
from tilesource.errors import FetchTimeoutError
from tilesource.errors import QueryError
from tilesource.errors import SourceConnectionError
from tilesource.source.common import DocumentFeatureMapper
from tilesource.source.common import default_fetch_settings


logger = logging.getLogger(__name__)

ID_COLUMN_ALIAS = '__id__'
CURSOR_NAME = 'tilesource_features'


class ConnectionContextManager:

    """Handle automatically closing a connection via with statement"""

    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.conn.close()
        except psycopg2.Error as e:
            logger.warning('Failed to close connection: %s', e)
        suppress_exception = False
        return suppress_exception


def _timeout_millis(ctx):
    remaining = ctx.remaining()
    if remaining is None:
        # zero disables the timeout
        return 0
    return max(1, int(remaining * 1000))


class PostgisSource:

    """
    Read features intersecting the tile bounds from a PostGIS table.

    Rows are read through a server side cursor, a page at a time, and go
    through the same document mapping as other sources: the geometry is
    selected as GeoJSON under the geometry column's name, and json columns
    are decoded, so source field paths can reach into them.
    """

    def __init__(self, conn_info, table, geometry_field, id_field='id',
                 srid=4326, source_fields=None, fetch_settings=None):
        if fetch_settings is None:
            fetch_settings = default_fetch_settings()
        self.conn_info = dict(conn_info)
        self.table = table
        self.geometry_field = geometry_field
        self.id_field = id_field
        self.srid = srid
        self.page_size = fetch_settings.page_size
        self.page_timeout = fetch_settings.page_timeout
        self.feature_mapper = DocumentFeatureMapper(
            geometry_field, source_fields)
        self.query = self._make_query()

    def _columns(self):
        columns = []
        for field_name in self.feature_mapper.source_fields.values():
            column = field_name.split('.')[0]
            if column != self.geometry_field and column not in columns:
                columns.append(column)
        return columns

    def _make_query(self):
        geometry = sql.Identifier(self.geometry_field)
        select_list = [
            sql.SQL('{} AS {}').format(
                sql.Identifier(self.id_field),
                sql.Identifier(ID_COLUMN_ALIAS)),
            sql.SQL(
                'ST_AsGeoJSON(ST_Transform({}, 4326))::json AS {}'
            ).format(geometry, geometry),
        ]
        select_list.extend(sql.Identifier(c) for c in self._columns())
        return sql.SQL(
            'SELECT {columns} FROM {table} WHERE {geometry} && '
            'ST_Transform(ST_MakeEnvelope(%s, %s, %s, %s, 4326), %s)'
        ).format(
            columns=sql.SQL(', ').join(select_list),
            table=sql.Identifier(*self.table.split('.')),
            geometry=geometry,
        )

    def _make_conn(self, **extra_conn_info):
        conn_info = dict(self.conn_info, **extra_conn_info)
        # if multiple hosts are provided, select one at random as a kind of
        # simple load balancing.
        host = conn_info.get('host')
        if host and isinstance(host, list):
            conn_info['host'] = random.choice(host)

        conn = psycopg2.connect(**conn_info)
        # server side cursors need a transaction to live in
        conn.set_session(readonly=True, autocommit=False)
        register_json(conn, loads=ujson.loads)
        register_default_jsonb(conn, loads=ujson.loads)
        return conn

    def check_connection(self, connect_timeout):
        conn = self._make_conn(connect_timeout=max(1, int(connect_timeout)))
        with ConnectionContextManager(conn):
            with conn.cursor() as cursor:
                cursor.execute('SELECT 1')

    def _set_statement_timeout(self, conn, page_ctx):
        with conn.cursor() as cursor:
            cursor.execute('SET LOCAL statement_timeout = %s',
                           (_timeout_millis(page_ctx),))

    def _fetch(self, ctx, bounds):
        params = (bounds.left, bounds.bottom, bounds.right, bounds.top,
                  self.srid)
        features = []
        with ConnectionContextManager(self._make_conn()) as conn:
            with conn.cursor(name=CURSOR_NAME,
                             cursor_factory=RealDictCursor) as cursor:
                ctx.check()
                with ctx.child(self.page_timeout) as page_ctx:
                    self._set_statement_timeout(conn, page_ctx)
                    cursor.execute(self.query, params)

                while True:
                    ctx.check()
                    with ctx.child(self.page_timeout) as page_ctx:
                        self._set_statement_timeout(conn, page_ctx)
                        rows = cursor.fetchmany(self.page_size)
                    if not rows:
                        break
                    logger.debug('Fetched %d rows', len(rows))
                    for row in rows:
                        doc = dict(row)
                        doc_id = doc.pop(ID_COLUMN_ALIAS)
                        features.append(self.feature_mapper(doc_id, doc))
        return features

    def get_features(self, ctx, tile_request):
        try:
            return self._fetch(ctx, tile_request.bounds)
        except QueryCanceledError as e:
            raise FetchTimeoutError(
                'Feature query timed out: %s' % e) from e
        except psycopg2.Error as e:
            raise QueryError('Feature query failed: %s' % e) from e


def _required(source_yaml, key):
    value = source_yaml.get(key)
    if value is None or value == '':
        raise ConfigurationError('Missing postgis source config: %s' % key)
    return value


def _int(source_yaml, key, default):
    value = source_yaml.get(key)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            'Invalid postgis source config %s: %r' % (key, value))


def make_postgis_source(source_yaml, fetch_settings=None):
    if fetch_settings is None:
        fetch_settings = default_fetch_settings()

    table = _required(source_yaml, 'table')
    geometry_field = _required(source_yaml, 'geometryField')
    if '.' in geometry_field:
        raise ConfigurationError(
            'PostGIS geometryField must be a column name: %s' %
            geometry_field)
    source_fields = source_yaml.get('sourceFields') or {}
    if not isinstance(source_fields, dict):
        raise ConfigurationError(
            'Expecting postgis sourceFields to be a mapping')

    conn_info = dict(
        host=source_yaml.get('host') or 'localhost',
        port=_int(source_yaml, 'port', 5432),
        dbname=_required(source_yaml, 'dbname'),
        user=source_yaml.get('user'),
        password=source_yaml.get('password'),
    )
    conn_info = {k: v for k, v in conn_info.items() if v is not None}

    source = PostgisSource(
        conn_info, table, geometry_field,
        id_field=source_yaml.get('idField') or 'id',
        srid=_int(source_yaml, 'srid', 4326),
        source_fields=source_fields,
        fetch_settings=fetch_settings,
    )

    try:
        source.check_connection(fetch_settings.connect_timeout)
    except psycopg2.Error as e:
        raise SourceConnectionError(
            'Could not connect to postgis database %s: %s' %
            (conn_info['dbname'], e)) from e

    return source
