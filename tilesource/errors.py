class TileSourceError(Exception):

    """Base class for all errors raised while building or querying sources"""


class ConfigurationError(TileSourceError):
    pass


class NoSourcesError(ConfigurationError):

    def __init__(self, layer_name=None):
        self.layer_name = layer_name
        super().__init__(
            'Layers must have a single backend source configured')


class MultipleSourcesError(ConfigurationError):

    def __init__(self, layer_name=None, source_types=()):
        self.layer_name = layer_name
        self.source_types = tuple(source_types)
        super().__init__(
            'Layers can only support a single backend source')


class SourceConnectionError(TileSourceError):
    pass


class QueryError(TileSourceError):
    pass


class FetchTimeoutError(QueryError):
    pass


class FetchCancelledError(QueryError):
    pass


class FieldNotFoundError(TileSourceError):

    def __init__(self, field_name, doc_id=None):
        self.field_name = field_name
        self.doc_id = doc_id
        msg = "Couldn't find geometry at field: %s" % field_name
        if doc_id is not None:
            msg = '%s (document %s)' % (msg, doc_id)
        super().__init__(msg)


class GeometryDecodeError(TileSourceError):

    def __init__(self, field_name, doc_id=None, reason=None):
        self.field_name = field_name
        self.doc_id = doc_id
        msg = 'Invalid geometry at field: %s' % field_name
        if doc_id is not None:
            msg = '%s (document %s)' % (msg, doc_id)
        if reason:
            msg = '%s: %s' % (msg, reason)
        super().__init__(msg)
