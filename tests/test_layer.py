import unittest


ES_YAML = dict(index='idx', geometryField='geom')
PG_YAML = dict(dbname='gis', table='roads', geometryField='geom')


class ParseSourceConfigTest(unittest.TestCase):

    def _call_fut(self, source_yaml):
        from tilesource.source import parse_source_config
        return parse_source_config(source_yaml, 'testlayer')

    def test_elasticsearch(self):
        from tilesource.source import SourceType
        source_cfg = self._call_fut(dict(elasticsearch=ES_YAML))
        self.assertIs(SourceType.ELASTICSEARCH, source_cfg.source_type)
        self.assertEqual(ES_YAML, source_cfg.options)

    def test_postgis(self):
        from tilesource.source import SourceType
        source_cfg = self._call_fut(dict(postgis=PG_YAML, elasticsearch=None))
        self.assertIs(SourceType.POSTGIS, source_cfg.source_type)

    def test_multiple(self):
        from tilesource.errors import MultipleSourcesError
        with self.assertRaises(MultipleSourcesError) as cm:
            self._call_fut(dict(elasticsearch=ES_YAML, postgis=PG_YAML))
        self.assertEqual('testlayer', cm.exception.layer_name)
        self.assertEqual(('elasticsearch', 'postgis'),
                         cm.exception.source_types)

    def test_none(self):
        from tilesource.errors import NoSourcesError
        for source_yaml in (None, {}, dict(elasticsearch=None)):
            with self.assertRaises(NoSourcesError):
                self._call_fut(source_yaml)

    def test_unknown(self):
        from tilesource.errors import ConfigurationError
        from tilesource.errors import NoSourcesError
        with self.assertRaises(ConfigurationError) as cm:
            self._call_fut(dict(mongodb={}))
        self.assertNotIsInstance(cm.exception, NoSourcesError)

    def test_options_not_mapping(self):
        from tilesource.errors import ConfigurationError
        with self.assertRaises(ConfigurationError):
            self._call_fut(dict(elasticsearch='idx'))


class MakeLayerTest(unittest.TestCase):

    def _layer_cfg(self, source, minzoom=0, maxzoom=22):
        from tilesource.layer import LayerConfig
        return LayerConfig('testlayer', 'a test layer', minzoom, maxzoom,
                           source)

    def _call_fut(self, layer_cfg):
        from tilesource.layer import make_layer
        return make_layer(layer_cfg)

    def test_single_source(self):
        from mock import patch
        from tilesource.source import SourceType
        layer_cfg = self._layer_cfg(dict(elasticsearch=ES_YAML), 2, 14)
        with patch('tilesource.layer.make_source') as make_source:
            layer = self._call_fut(layer_cfg)

        self.assertIs(make_source.return_value, layer.source)
        self.assertIs(SourceType.ELASTICSEARCH, layer.source_type)
        self.assertEqual('testlayer', layer.name)
        self.assertEqual('a test layer', layer.description)
        self.assertEqual(2, layer.minzoom)
        self.assertEqual(14, layer.maxzoom)
        source_cfg = make_source.call_args[0][0]
        self.assertEqual(ES_YAML, source_cfg.options)

    def test_elasticsearch_source_created(self):
        from mock import patch
        from tilesource.source.es import ElasticsearchSource
        layer_cfg = self._layer_cfg(dict(elasticsearch=ES_YAML))
        with patch('tilesource.source.es.Elasticsearch'):
            layer = self._call_fut(layer_cfg)
        self.assertIsInstance(layer.source, ElasticsearchSource)

    def test_bad_source_option_is_config_error(self):
        from mock import patch
        from tilesource.errors import ConfigurationError
        layer_cfg = self._layer_cfg(
            dict(elasticsearch=dict(ES_YAML, port='abc')))
        with patch('tilesource.source.es.Elasticsearch'):
            with self.assertRaises(ConfigurationError) as cm:
                self._call_fut(layer_cfg)
        self.assertIn('testlayer', str(cm.exception))

    def test_multiple_sources(self):
        from mock import patch
        from tilesource.errors import MultipleSourcesError
        layer_cfg = self._layer_cfg(
            dict(elasticsearch=ES_YAML, postgis=PG_YAML))
        with patch('tilesource.layer.make_source') as make_source:
            with self.assertRaises(MultipleSourcesError):
                self._call_fut(layer_cfg)
        make_source.assert_not_called()

    def test_no_sources(self):
        from mock import patch
        from tilesource.errors import NoSourcesError
        layer_cfg = self._layer_cfg({})
        with patch('tilesource.layer.make_source') as make_source:
            with self.assertRaises(NoSourcesError):
                self._call_fut(layer_cfg)
        make_source.assert_not_called()

    def test_source_connection_error_wrapped(self):
        from mock import patch
        from tilesource.errors import SourceConnectionError
        layer_cfg = self._layer_cfg(dict(elasticsearch=ES_YAML))
        cause = SourceConnectionError('refused')
        with patch('tilesource.layer.make_source', side_effect=cause):
            with self.assertRaises(SourceConnectionError) as cm:
                self._call_fut(layer_cfg)
        self.assertIs(cause, cm.exception.__cause__)
        self.assertIn('testlayer', str(cm.exception))

    def test_source_config_error_wrapped(self):
        from mock import patch
        from tilesource.errors import ConfigurationError
        layer_cfg = self._layer_cfg(dict(elasticsearch=ES_YAML))
        cause = ConfigurationError('Missing index')
        with patch('tilesource.layer.make_source', side_effect=cause):
            with self.assertRaises(ConfigurationError) as cm:
                self._call_fut(layer_cfg)
        self.assertIs(cause, cm.exception.__cause__)

    def test_invalid_zoom_range(self):
        from mock import patch
        from tilesource.errors import ConfigurationError
        with patch('tilesource.layer.make_source'):
            with self.assertRaises(ConfigurationError):
                self._call_fut(
                    self._layer_cfg(dict(elasticsearch=ES_YAML), 10, 5))
            with self.assertRaises(ConfigurationError):
                self._call_fut(
                    self._layer_cfg(dict(elasticsearch=ES_YAML), -1, 5))


class LayerTest(unittest.TestCase):

    def test_includes_zoom(self):
        from tilesource.layer import Layer
        layer = Layer('l', '', 3, 10, None)
        self.assertFalse(layer.includes_zoom(2))
        self.assertTrue(layer.includes_zoom(3))
        self.assertTrue(layer.includes_zoom(10))
        self.assertFalse(layer.includes_zoom(11))

    def test_get_features_delegates(self):
        from mock import MagicMock
        from tilesource.layer import Layer
        source = MagicMock()
        layer = Layer('l', '', 0, 22, source)
        result = layer.get_features('ctx', 'tile')
        source.get_features.assert_called_once_with('ctx', 'tile')
        self.assertIs(source.get_features.return_value, result)


class ParseLayerConfigsTest(unittest.TestCase):

    def _call_fut(self, layers_yaml):
        from tilesource.layer import parse_layer_configs
        return parse_layer_configs(layers_yaml)

    def test_defaults(self):
        layer_cfgs = self._call_fut([
            dict(name='a', source=dict(elasticsearch=ES_YAML)),
        ])
        self.assertEqual(1, len(layer_cfgs))
        layer_cfg = layer_cfgs[0]
        self.assertEqual('a', layer_cfg.name)
        self.assertEqual('', layer_cfg.description)
        self.assertEqual(0, layer_cfg.minzoom)
        self.assertEqual(22, layer_cfg.maxzoom)
        self.assertEqual(dict(elasticsearch=ES_YAML), layer_cfg.source)

    def test_zooms(self):
        layer_cfgs = self._call_fut([
            dict(name='a', minzoom='4', maxzoom=9, source={}),
        ])
        self.assertEqual(4, layer_cfgs[0].minzoom)
        self.assertEqual(9, layer_cfgs[0].maxzoom)

    def test_invalid(self):
        from tilesource.errors import ConfigurationError
        for layers_yaml in ([], None, [dict(source={})], ['a'],
                            [dict(name='a'), dict(name='a')],
                            [dict(name='a', minzoom='low')]):
            with self.assertRaises(ConfigurationError):
                self._call_fut(layers_yaml)

    def test_make_layers(self):
        from mock import patch
        from tilesource.layer import make_layers
        layers_yaml = [
            dict(name='a', source=dict(elasticsearch=ES_YAML)),
            dict(name='b', source=dict(postgis=PG_YAML)),
        ]
        with patch('tilesource.layer.make_source'):
            layers = make_layers(layers_yaml)
        self.assertEqual(['a', 'b'], [x.name for x in layers])
