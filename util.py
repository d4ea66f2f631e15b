import math


def chunk_coord(position, chunk_size):
    """ Returns the grid coordinate of the chunk nearest to `position`.

    Parameters
    ----------
    position : tuple of len 2, (x, z) in terrain units
    chunk_size : width of a chunk in terrain units

    Returns
    -------
    coord : tuple of ints of len 2

    """
    x, z = position
    return (int(round(x / chunk_size)), int(round(z / chunk_size)))


def ring(center, radius):
    """All coordinates in the square of side 2*radius+1 around `center`, row by row."""
    cx, cz = center
    for dz in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            yield (cx + dx, cz + dz)


def sqr_distance(a, b):
    return (a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2


class Bounds2D(object):
    """Axis aligned square in the ground plane."""
    __slots__ = ("center", "half")

    def __init__(self, center, size):
        self.center = (float(center[0]), float(center[1]))
        self.half = size / 2.0

    @property
    def min(self):
        return (self.center[0] - self.half, self.center[1] - self.half)

    @property
    def max(self):
        return (self.center[0] + self.half, self.center[1] + self.half)

    def sqr_distance(self, point):
        """Squared distance from `point` to the nearest point of the square (0 inside)."""
        dx = max(abs(point[0] - self.center[0]) - self.half, 0.0)
        dz = max(abs(point[1] - self.center[1]) - self.half, 0.0)
        return dx * dx + dz * dz

    def distance(self, point):
        return math.sqrt(self.sqr_distance(point))

    def __repr__(self):
        return f"Bounds2D(center={self.center}, size={self.half * 2})"
