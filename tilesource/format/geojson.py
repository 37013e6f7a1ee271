from datetime import date
from datetime import time
from decimal import Decimal
from math import ceil
from math import log
import ujson as json
import shapely.ops

# enough decimal places to tell apart pixels of a 256px tile at each zoom
precisions = [int(ceil(log(1 << zoom + 8 + 2) / log(10)) - 2)
              for zoom in range(23)]


class JsonFeatureCreator:

    def __init__(self, precision=None):
        self.precision = precision

    def _trim_precision(self, x, y, z=None):
        return round(x, self.precision), round(y, self.precision)

    def __call__(self, feature):
        shape, props, fid = feature

        if self.precision is not None:
            truncated_precision_shape = shapely.ops.transform(
                self._trim_precision, shape)
            if truncated_precision_shape.is_valid:
                shape = truncated_precision_shape

        geometry = shape.__geo_interface__
        result = dict(type='Feature', properties=props, geometry=geometry)
        if fid is not None:
            result['id'] = fid
        return result


def json_default(value):
    """encode property values that json has no type for"""
    # datetime is a subclass of date
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError('%r is not JSON serializable' % (value,))


def create_feature_collection(features, precision=None):
    create_json_feature = JsonFeatureCreator(precision)
    fs = [create_json_feature(f) for f in features]
    return dict(type='FeatureCollection', features=fs)


def precision_for_zoom(zoom):
    precision_idx = zoom if 0 <= zoom < len(precisions) else -1
    return precisions[precision_idx]


def encode_feature_collection(out, features, zoom, precision=None):
    """
    Encode a list of (shapely, property dict, id) features into a GeoJSON
    stream.

    The precision defaults to one suited to the zoom. Geometries in the
    features list are assumed to be lon, lats.
    """
    if precision is None:
        precision = precision_for_zoom(zoom)
    fs = create_feature_collection(features, precision)
    json.dump(fs, out, default=json_default)


def encode_multiple_layers(out, features_by_layer, zoom, precision=None):
    """
    features_by_layer should be a dict: layer_name -> features
    """
    if precision is None:
        precision = precision_for_zoom(zoom)
    geojson = {}
    for layer_name, features in features_by_layer.items():
        geojson[layer_name] = create_feature_collection(features, precision)
    json.dump(geojson, out, default=json_default)
