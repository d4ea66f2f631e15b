#std/external libs
from collections import namedtuple
import numpy

#local libs
import config
import simplex
from settings import LOCAL, GLOBAL

MapData = namedtuple('MapData', ['height_map', 'colour_map'])


def _octave_offsets(seed, octaves, offset):
    # The generator is local so concurrent workers never share state.
    prng = numpy.random.RandomState(seed & 0xffffffff)
    offsets = numpy.zeros((octaves, 2), dtype=numpy.float64)
    for o in range(octaves):
        offsets[o, 0] = prng.randint(-100000, 100000) + offset[0]
        offsets[o, 1] = prng.randint(-100000, 100000) - offset[1]
    return offsets


def max_possible_height(octaves, persistence):
    """Sum of the amplitudes of every octave."""
    total = 0.0
    amplitude = 1.0
    for _ in range(octaves):
        total += amplitude
        amplitude *= persistence
    return total


def generate_noise_map(width, height, scale, octaves, persistence, lacunarity, seed,
                       offset=(0.0, 0.0), normalize_mode=GLOBAL):
    """ Sample fractal simplex noise on a `width` x `height` grid.

    The result is indexed [x, y]. Grid cell (x, y) samples octave o at
    ((x - width/2) + ox_o) / scale * frequency, so two maps whose offsets differ
    by a whole number of cells agree exactly wherever they overlap.

    normalize_mode LOCAL stretches the observed range onto [0, 1]; GLOBAL
    divides by the largest height the octaves could reach, so separately
    generated maps stay comparable, and clamps below at 0.
    """
    if scale <= 0:
        scale = config.MIN_NOISE_SCALE
    octaves = max(0, int(octaves))
    lacunarity = max(1.0, lacunarity)
    persistence = min(1.0, max(0.0, persistence))

    offsets = _octave_offsets(seed, octaves, offset)
    xs = (numpy.arange(width, dtype=numpy.float64) - width / 2.0)[:, numpy.newaxis]
    ys = (numpy.arange(height, dtype=numpy.float64) - height / 2.0)[numpy.newaxis, :]

    noise_map = numpy.zeros((width, height), dtype=numpy.float64)
    amplitude = 1.0
    frequency = 1.0
    for o in range(octaves):
        sample_x = (xs + offsets[o, 0]) / scale * frequency
        sample_y = (ys + offsets[o, 1]) / scale * frequency
        noise_map += simplex.noise2(sample_x, sample_y) * amplitude
        amplitude *= persistence
        frequency *= lacunarity

    if normalize_mode == LOCAL:
        lo = noise_map.min()
        hi = noise_map.max()
        if hi > lo:
            noise_map = (noise_map - lo) / (hi - lo)
        else:
            noise_map = numpy.zeros_like(noise_map)
    else:
        top = max_possible_height(octaves, persistence)
        if top <= 0:
            return numpy.zeros_like(noise_map)
        noise_map = (noise_map + 1) / (2.0 * top / config.GLOBAL_NORMALIZE_FUDGE)
        noise_map = numpy.maximum(noise_map, 0.0)
    return noise_map


def generate_falloff_map(size, a=config.FALLOFF_A, b=config.FALLOFF_B):
    """Square map that is 0 in the middle and rises to 1 at the edges."""
    coords = numpy.arange(size, dtype=numpy.float64) / size * 2 - 1
    value = numpy.maximum(numpy.abs(coords)[:, numpy.newaxis], numpy.abs(coords)[numpy.newaxis, :])
    va = value ** a
    return va / (va + (b - b * value) ** a)


def colour_map_from_height_map(height_map, regions):
    """ Paint the core (unbordered) area of `height_map` by height band.

    Returns uint8 rgb indexed [row=y, column=x]. A cell takes the colour of the
    highest region whose height it reaches; cells below every region are black.
    """
    core = height_map[1:-1, 1:-1].T
    colours = numpy.zeros(core.shape + (3,), dtype=numpy.uint8)
    if not regions:
        return colours
    heights = numpy.array([r.height for r in regions], dtype=numpy.float64)
    table = numpy.array([r.colour for r in regions], dtype=numpy.uint8)
    idx = numpy.searchsorted(heights, core, side='right') - 1
    painted = idx >= 0
    colours[painted] = table[idx[painted]]
    return colours


def generate_map_data(center, snap):
    """ Height field and colour map for the chunk centred on `center`.

    Runs on a worker: everything it needs comes from the immutable snapshot.
    """
    size = snap.core_size + 2
    ox, oy = snap.offset
    height_map = generate_noise_map(
        size, size, snap.scale, snap.octaves, snap.persistence, snap.lacunarity,
        snap.seed, (center[0] + ox, center[1] + oy), snap.normalize_mode,
    )
    if snap.use_falloff:
        height_map = numpy.clip(height_map - generate_falloff_map(size), 0.0, 1.0)
    colour_map = colour_map_from_height_map(height_map, snap.regions)
    height_map.flags.writeable = False
    colour_map.flags.writeable = False
    return MapData(height_map, colour_map)
