from collections import namedtuple
import mercantile


# lng/lat degrees, ordered like shapely bounds
Bounds = namedtuple('Bounds', 'left bottom right top')


class TileRequest(namedtuple('TileRequest', 'zoom x y bounds')):

    __slots__ = ()

    def __str__(self):
        return serialize_coord(self)


def coord_to_bounds(zoom, x, y):
    west, south, east, north = mercantile.bounds(x, y, zoom)

    # clamp boxes which fall off the edge of the grid
    east = min(180.0, east)
    north = min(90.0, north)

    return Bounds(west, south, east, north)


def create_tile_request(zoom, x, y):
    assert zoom >= 0, 'Invalid zoom: %d' % zoom
    n = 1 << zoom
    assert 0 <= x < n, 'Invalid column %d for zoom %d' % (x, zoom)
    assert 0 <= y < n, 'Invalid row %d for zoom %d' % (y, zoom)
    return TileRequest(zoom, x, y, coord_to_bounds(zoom, x, y))


def serialize_coord(tile_request):
    return '%d/%d/%d' % (tile_request.zoom, tile_request.x, tile_request.y)


def deserialize_coord(coord_string):
    fields = coord_string.split('/')
    if len(fields) != 3:
        return None
    # z/x/y
    try:
        zoom, x, y = map(int, fields)
    except ValueError:
        return None
    if zoom < 0 or not (0 <= x < (1 << zoom) and 0 <= y < (1 << zoom)):
        return None
    return TileRequest(zoom, x, y, coord_to_bounds(zoom, x, y))

