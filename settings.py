'''
settings.py -- tunable terrain parameters

Settings objects replace editor assets. Every accepted change bumps a
`version` counter; consumers compare the (noise, terrain) version token they
last saw instead of subscribing to change events. Background jobs never see
these mutable objects, only the immutable TerrainSnapshot taken from them.
'''
from collections import namedtuple

import config
import logutil
from meshgen import HeightCurve

LOCAL = 'local'
GLOBAL = 'global'
NORMALIZE_MODES = (LOCAL, GLOBAL)

LODInfo = namedtuple('LODInfo', ['lod', 'visible_distance_threshold', 'use_for_collider'])
TerrainType = namedtuple('TerrainType', ['name', 'height', 'colour'])

TerrainSnapshot = namedtuple('TerrainSnapshot', [
    'seed', 'scale', 'octaves', 'persistence', 'lacunarity', 'offset', 'normalize_mode',
    'height_multiplier', 'height_curve', 'use_flat_shading', 'use_falloff',
    'core_size', 'regions',
])


class UpdatableSettings(object):
    _fields = ()

    def __init__(self, auto_update=True, **values):
        self.auto_update = auto_update
        self.version = 0
        for name, value in values.items():
            if name not in self._fields:
                raise AttributeError(f"{type(self).__name__} has no setting {name!r}")
            setattr(self, name, value)
        self.validate()

    def validate(self):
        pass

    def update(self, **values):
        """Set several values at once, clamp them and bump the version."""
        for name, value in values.items():
            if name not in self._fields:
                raise AttributeError(f"{type(self).__name__} has no setting {name!r}")
            setattr(self, name, value)
        self.validate()
        self.notify_of_updated_values()

    def notify_of_updated_values(self):
        self.version += 1


class NoiseSettings(UpdatableSettings):
    _fields = ('normalize_mode', 'seed', 'scale', 'offset', 'lacunarity', 'persistence', 'octaves')

    def __init__(self, auto_update=True, **values):
        self.normalize_mode = config.NORMALIZE_MODE
        self.seed = config.NOISE_SEED
        self.scale = config.NOISE_SCALE
        self.offset = config.NOISE_OFFSET
        self.lacunarity = config.NOISE_LACUNARITY
        self.persistence = config.NOISE_PERSISTENCE
        self.octaves = config.NOISE_OCTAVES
        super().__init__(auto_update, **values)

    def validate(self):
        # Out-of-range values are clamped, never rejected.
        if self.normalize_mode not in NORMALIZE_MODES:
            logutil.log("NOISE", f"unknown normalize mode {self.normalize_mode!r}, using {GLOBAL!r}", level="WARN")
            self.normalize_mode = GLOBAL
        self.seed = int(self.seed)
        self.octaves = max(0, int(self.octaves))
        self.lacunarity = max(1.0, float(self.lacunarity))
        self.persistence = min(1.0, max(0.0, float(self.persistence)))
        self.scale = max(config.MIN_NOISE_SCALE, float(self.scale))
        ox, oy = self.offset
        self.offset = (float(ox), float(oy))


class TerrainSettings(UpdatableSettings):
    _fields = ('uniform_scale', 'use_flat_shading', 'use_falloff', 'height_multiplier',
               'height_curve', 'detail_levels', 'regions')

    def __init__(self, auto_update=True, **values):
        self.uniform_scale = config.UNIFORM_SCALE
        self.use_flat_shading = config.USE_FLAT_SHADING
        self.use_falloff = config.USE_FALLOFF_MAP
        self.height_multiplier = config.MESH_HEIGHT_MULTIPLIER
        self.height_curve = HeightCurve(config.MESH_HEIGHT_CURVE)
        self.detail_levels = config.DETAIL_LEVELS
        self.regions = config.REGIONS
        super().__init__(auto_update, **values)

    def validate(self):
        if self.uniform_scale <= 0:
            self.uniform_scale = 1.0
        if not callable(self.height_curve):
            self.height_curve = HeightCurve(self.height_curve)
        self.detail_levels = tuple(LODInfo(int(lod), float(dist), bool(collider))
                                   for lod, dist, collider in self.detail_levels)
        if not self.detail_levels:
            raise ValueError("at least one detail level is required")
        self.regions = tuple(sorted((TerrainType(name, float(height), tuple(colour))
                                     for name, height, colour in self.regions),
                                    key=lambda r: r.height))

    @property
    def chunk_core_size(self):
        return config.FLAT_CHUNK_CORE_SIZE if self.use_flat_shading else config.CHUNK_CORE_SIZE

    @property
    def min_height(self):
        return self.uniform_scale * self.height_multiplier * float(self.height_curve(0.0))

    @property
    def max_height(self):
        return self.uniform_scale * self.height_multiplier * float(self.height_curve(1.0))


def version_token(noise_settings, terrain_settings):
    return (noise_settings.version, terrain_settings.version)


def snapshot(noise_settings, terrain_settings, core_size=None):
    """Freeze the current settings for use by background jobs."""
    if core_size is None:
        core_size = terrain_settings.chunk_core_size
    return TerrainSnapshot(
        seed=noise_settings.seed,
        scale=noise_settings.scale,
        octaves=noise_settings.octaves,
        persistence=noise_settings.persistence,
        lacunarity=noise_settings.lacunarity,
        offset=tuple(noise_settings.offset),
        normalize_mode=noise_settings.normalize_mode,
        height_multiplier=terrain_settings.height_multiplier,
        height_curve=terrain_settings.height_curve,
        use_flat_shading=terrain_settings.use_flat_shading,
        use_falloff=terrain_settings.use_falloff,
        core_size=int(core_size),
        regions=terrain_settings.regions,
    )
