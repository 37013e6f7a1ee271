import unittest


class TestConfigMerge(unittest.TestCase):

    def _call_fut(self, destcfg, srccfg):
        from tilesource.config import merge_cfg
        return merge_cfg(destcfg, srccfg)

    def test_both_empty(self):
        self.assertEqual({}, self._call_fut({}, {}))

    def test_complementary_scalar(self):
        src = dict(foo='bar')
        dest = dict(quux='morx')
        self.assertEqual(dict(foo='bar', quux='morx'),
                         self._call_fut(dest, src))

    def test_merge_complementary(self):
        src = dict(fetch={'page-size': 10})
        dest = dict(fetch={'page-timeout-seconds': 60})
        self.assertEqual(
            dict(fetch={'page-size': 10, 'page-timeout-seconds': 60}),
            self._call_fut(dest, src))

    def test_merge_override(self):
        src = dict(foo=dict(bar='baz'))
        dest = dict(foo=dict(bar='fleem'))
        self.assertEqual(
            dict(foo=dict(bar='baz')),
            self._call_fut(dest, src))

    def test_lists_replaced(self):
        src = dict(layers=[dict(name='b')])
        dest = dict(layers=[dict(name='a')])
        self.assertEqual(dict(layers=[dict(name='b')]),
                         self._call_fut(dest, src))


class TestCliConfiguration(unittest.TestCase):

    def _call_fut(self, config_dict, environ=None, **kwargs):
        from tilesource.config import make_config_from_argparse
        from yaml import dump
        from io import StringIO
        raw_yaml = dump(config_dict)
        raw_yaml_file_obj = StringIO(raw_yaml)
        if environ is None:
            environ = {}
        return make_config_from_argparse(
            raw_yaml_file_obj, environ=environ, **kwargs)

    def _assert_cfg(self, cfg, to_check):
        # cfg is the config object to validate
        # to_check is a dict of key, values to check in cfg
        for k, v in to_check.items():
            cfg_val = getattr(cfg, k)
            self.assertEqual(v, cfg_val)

    def test_no_config(self):
        cfg = self._call_fut(dict(config=None))
        # just assert some of the defaults are set
        self._assert_cfg(cfg,
                         dict(page_size=250,
                              page_timeout_seconds=60,
                              request_timeout_seconds=None,
                              connect_timeout_seconds=30,
                              geojson_precision=None,
                              statsd_host=None,
                              logconfig=None,
                              layers_yaml=[]))

    def test_fetch_modified(self):
        cfg = self._call_fut(
            dict(fetch={'page-size': 100, 'request-timeout-seconds': 5}))
        self._assert_cfg(cfg,
                         dict(page_size=100,
                              page_timeout_seconds=60,
                              request_timeout_seconds=5))

    def test_fetch_settings(self):
        cfg = self._call_fut(
            dict(fetch={'page-size': 10, 'page-timeout-seconds': 2,
                        'connect-timeout-seconds': 3}))
        fetch_settings = cfg.fetch_settings()
        self.assertEqual(10, fetch_settings.page_size)
        self.assertEqual(2, fetch_settings.page_timeout)
        self.assertEqual(3, fetch_settings.connect_timeout)

    def test_statsd(self):
        cfg = self._call_fut(dict(statsd=dict(host='stats.local')))
        self._assert_cfg(cfg,
                         dict(statsd_host='stats.local',
                              statsd_port=8125,
                              statsd_prefix='tilesource'))

    def test_layers(self):
        layers = [dict(name='buildings',
                       source=dict(elasticsearch=dict(index='b')))]
        cfg = self._call_fut(dict(layers=layers))
        self.assertEqual(layers, cfg.layers_yaml)

    def test_environment_override(self):
        environ = {
            'TILESOURCE__FETCH__PAGE_SIZE': '42',
            'TILESOURCE__GEOJSON__PRECISION': '5',
            'OTHER__FETCH__PAGE_SIZE': '1',
        }
        cfg = self._call_fut(
            dict(fetch={'page-size': 100}), environ=environ)
        self._assert_cfg(cfg, dict(page_size=42, geojson_precision=5))

    def test_argument_override(self):
        environ = {'TILESOURCE__FETCH__PAGE_SIZE': '42'}
        cfg = self._call_fut(
            dict(fetch={'page-size': 100}), environ=environ,
            page_size='7', request_timeout_seconds='1.5')
        self._assert_cfg(cfg, dict(page_size=7,
                                   request_timeout_seconds=1.5))

    def test_invalid_page_size(self):
        with self.assertRaises(AssertionError):
            self._call_fut(dict(fetch={'page-size': 0}))


class TestEnvironmentKeys(unittest.TestCase):

    def test_make_yaml_key(self):
        from tilesource.config import _make_yaml_key
        self.assertEqual('page-timeout-seconds',
                         _make_yaml_key('PAGE_TIMEOUT_SECONDS'))

    def test_override_creates_subtree(self):
        from tilesource.config import _override_cfg
        cfg = {}
        _override_cfg(cfg, ['statsd', 'host'], 'localhost')
        self.assertEqual(dict(statsd=dict(host='localhost')), cfg)
