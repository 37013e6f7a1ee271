from enum import Enum
import json
import logging
import sys
import traceback


def make_tile_dict(tile_request):
    """helper function to make a dict from a tile request for logging"""
    return dict(
        z=tile_request.zoom,
        x=tile_request.x,
        y=tile_request.y,
    )


class LogLevel(Enum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


class LogCategory(Enum):
    LIFECYCLE = 1
    FETCH = 2


def log_level_name(log_level):
    return log_level.name.lower()


def log_category_name(log_category):
    return log_category.name.lower()


class JsonFetchLogger:

    def __init__(self, logger):
        self.logger = logger

    def log(self, log_level, log_category, msg, exception,
            formatted_stacktrace, tile_request, layer_name=None):
        try:
            log_level_str = log_level_name(log_level)
            logging_log_level = log_level.value
        except Exception:
            sys.stderr.write('ERROR: code error: invalid log level: %s\n' %
                             log_level)
            log_level_str = log_level_name(LogLevel.ERROR)
            logging_log_level = logging.ERROR
        try:
            log_category_str = log_category_name(log_category)
        except Exception:
            sys.stderr.write('ERROR: code error: invalid log category: %s\n' %
                             log_category)
            log_category_str = log_category_name(LogCategory.FETCH)

        json_obj = dict(
            category=log_category_str,
            type=log_level_str,
            msg=msg,
        )

        if layer_name is not None:
            json_obj['layer'] = layer_name
        if exception:
            json_obj['exception'] = str(exception)
        if formatted_stacktrace:
            json_obj['stacktrace'] = formatted_stacktrace
        if tile_request:
            json_obj['tile'] = make_tile_dict(tile_request)
        json_str = json.dumps(json_obj)
        self.logger.log(logging_log_level, json_str)

    def error(self, msg, exception, formatted_stacktrace, tile_request=None,
              layer_name=None):
        self.log(LogLevel.ERROR, LogCategory.FETCH, msg, exception,
                 formatted_stacktrace, tile_request, layer_name)

    def fetch_error(self, exception, stacktrace, tile_request, layer_name):
        self.error('Fetch error', exception, stacktrace, tile_request,
                   layer_name)

    def log_fetched(self, layer_name, tile_request, n_features, timing,
                    mode):
        json_obj = dict(
            category=log_category_name(LogCategory.FETCH),
            type=log_level_name(LogLevel.INFO),
            layer=layer_name,
            tile=make_tile_dict(tile_request),
            mode=mode,
            features=n_features,
            time=timing,
        )
        json_str = json.dumps(json_obj)
        self.logger.info(json_str)

    def lifecycle(self, msg):
        self.log(LogLevel.INFO, LogCategory.LIFECYCLE, msg, None, None, None)


def format_stacktrace_one_line(exc_info=None):
    # exc_info is expected to be an exception tuple from sys.exc_info()
    if exc_info is None:
        exc_info = sys.exc_info()
    exception_lines = traceback.format_exception(*exc_info)
    return ' | '.join([x.replace('\n', '') for x in exception_lines])
