from yaml import safe_load
import os

from tilesource.source.common import FetchSettings


class Configuration:
    '''
    Flatten configuration from yaml
    '''

    def __init__(self, yml):
        self.yml = yml

        self.logconfig = self._cfg('logging config')

        self.statsd_host = None
        if self.yml.get('statsd'):
            self.statsd_host = self._cfg('statsd host')
            self.statsd_port = self._cfg('statsd port')
            self.statsd_prefix = self._cfg('statsd prefix')

        fetch_cfg = self.yml['fetch']
        self.page_size = fetch_cfg['page-size']
        assert self.page_size > 0, 'fetch page-size must be positive'
        self.page_timeout_seconds = fetch_cfg['page-timeout-seconds']
        assert self.page_timeout_seconds > 0, \
            'fetch page-timeout-seconds must be positive'
        self.request_timeout_seconds = fetch_cfg['request-timeout-seconds']
        self.connect_timeout_seconds = fetch_cfg['connect-timeout-seconds']

        self.geojson_precision = self._cfg('geojson precision')

        self.layers_yaml = self.yml['layers']

    def __repr__(self):
        return 'yml: {yml},\n' \
               'logconfig: {logconfig},\n' \
               'statsd_host: {statsd_host},\n' \
               'page_size: {page_size},\n' \
               'page_timeout_seconds: {page_timeout_seconds},\n' \
               'request_timeout_seconds: {request_timeout_seconds},\n' \
               'connect_timeout_seconds: {connect_timeout_seconds},\n' \
               'geojson_precision: {geojson_precision}\n'.format(
                   yml=self.yml,
                   logconfig=self.logconfig,
                   statsd_host=self.statsd_host,
                   page_size=self.page_size,
                   page_timeout_seconds=self.page_timeout_seconds,
                   request_timeout_seconds=self.request_timeout_seconds,
                   connect_timeout_seconds=self.connect_timeout_seconds,
                   geojson_precision=self.geojson_precision)

    def fetch_settings(self):
        return FetchSettings(self.page_size, self.page_timeout_seconds,
                             self.connect_timeout_seconds)

    def _cfg(self, yamlkeys_str):
        yamlkeys = yamlkeys_str.split()
        yamlval = self.yml
        for subkey in yamlkeys:
            yamlval = yamlval[subkey]
        return yamlval


def default_yml_config():
    return {
        'logging': {
            'config': None
        },
        'statsd': {
            'host': None,
            'port': 8125,
            'prefix': 'tilesource',
        },
        'fetch': {
            'page-size': 250,
            'page-timeout-seconds': 60,
            'request-timeout-seconds': None,
            'connect-timeout-seconds': 30,
        },
        'geojson': {
            'precision': None,
        },
        'layers': [],
    }


def merge_cfg(dest, source):
    for k, v in source.items():
        if isinstance(v, dict):
            subdest = dest.setdefault(k, {})
            merge_cfg(subdest, v)
        else:
            dest[k] = v
    return dest


def _override_cfg(container, yamlkeys, value):
    """
    Override a hierarchical key in the config, setting it to the value.

    Note that yamlkeys should be a non-empty list of strings.
    """

    key = yamlkeys[0]
    rest = yamlkeys[1:]

    if len(rest) == 0:
        # no rest means we found the key to update.
        container[key] = value

    elif key in container:
        # still need to find the leaf in the tree, so recurse.
        _override_cfg(container[key], rest, value)

    else:
        # need to create a sub-tree down to the leaf to insert into.
        subtree = {}
        _override_cfg(subtree, rest, value)
        container[key] = subtree


def _make_yaml_key(s):
    """
    Turn an environment variable into a yaml key

    Keys in YAML files are generally lower case and use dashes instead of
    underscores.
    """

    return s.lower().replace("_", "-")


def make_config_from_argparse(config_file_handle, default_yml=None,
                              environ=None,
                              page_size=None,
                              request_timeout_seconds=None):
    """ Generate config from various sources. The configurations chain
        includes these in order:
        1. a hardcoded default_yml_config
        2. a passed-in config file
        3. environment variables with prefix `TILESOURCE__`
        4. explicit override arguments such as page_size

        the configuration values at the end of the chain override the values
        of those at the beginning of the chain
    """
    if default_yml is None:
        default_yml = default_yml_config()
    if environ is None:
        environ = os.environ

    # override defaults from config file
    yml_data = safe_load(config_file_handle) or {}
    cfg = merge_cfg(default_yml, yml_data)

    # override config file with values from the environment
    for k in environ:
        # keys in the environment have the form TILESOURCE__FOO__BAR (note the
        # _double_ underscores), which will decode the value as YAML and insert
        # it in cfg['foo']['bar'].
        if k.startswith('TILESOURCE__'):
            keys = [_make_yaml_key(x) for x in k.split('__')[1:]]
            value = safe_load(environ[k])
            _override_cfg(cfg, keys, value)

    # override config values with explicit arguments if set
    if page_size is not None:
        _override_cfg(cfg, ['fetch', 'page-size'], int(page_size))

    if request_timeout_seconds is not None:
        _override_cfg(cfg, ['fetch', 'request-timeout-seconds'],
                      float(request_timeout_seconds))

    return Configuration(cfg)
