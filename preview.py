'''
preview.py -- one-off synchronous terrain preview for tuning settings

Runs the whole pipeline for the chunk at the origin on the calling thread.
With auto_update on, refresh() only rebuilds when the settings version token
moved since the last build.
'''
from collections import namedtuple
import sys

import numpy
from PIL import Image

import config
import logutil
import mapgen
import meshgen
import settings

NOISE = 'noise'
COLOUR = 'colour'
MESH = 'mesh'
FALLOFF = 'falloff'
DRAW_MODES = (NOISE, COLOUR, MESH, FALLOFF)

Preview = namedtuple('Preview', ['draw_mode', 'height_map', 'colour_map', 'mesh', 'image'])


def texture_from_height_map(height_map):
    """Greyscale uint8 image, indexed [row=y, column=x]."""
    return (numpy.clip(height_map.T, 0.0, 1.0) * 255).astype(numpy.uint8)


class PreviewGenerator(object):

    def __init__(self, noise_settings=None, terrain_settings=None, draw_mode=config.PREVIEW_DRAW_MODE,
                 lod=config.PREVIEW_LOD, auto_update=config.PREVIEW_AUTO_UPDATE):
        if draw_mode not in DRAW_MODES:
            raise ValueError(f"unknown draw mode {draw_mode!r}, expected one of {DRAW_MODES}")
        self.noise_settings = noise_settings if noise_settings is not None else settings.NoiseSettings()
        self.terrain_settings = terrain_settings if terrain_settings is not None else settings.TerrainSettings()
        self.draw_mode = draw_mode
        self.lod = min(max(0, int(lod)), config.MAX_LOD)
        self.auto_update = auto_update
        self.token = None
        self.preview = None
        self.builds = 0

    def draw_map(self):
        """Build a preview right now, whatever the token says."""
        snap = settings.snapshot(self.noise_settings, self.terrain_settings)
        map_data = mapgen.generate_map_data((0.0, 0.0), snap)
        mesh = None
        if self.draw_mode == NOISE:
            image = texture_from_height_map(map_data.height_map[1:-1, 1:-1])
        elif self.draw_mode == COLOUR:
            image = map_data.colour_map
        elif self.draw_mode == FALLOFF:
            image = texture_from_height_map(mapgen.generate_falloff_map(snap.core_size))
        else:
            mesh = meshgen.generate_terrain_mesh(
                map_data.height_map, snap.height_multiplier, snap.height_curve,
                self.lod, snap.use_flat_shading)
            image = map_data.colour_map
        self.token = settings.version_token(self.noise_settings, self.terrain_settings)
        self.builds += 1
        self.preview = Preview(self.draw_mode, map_data.height_map, map_data.colour_map, mesh, image)
        logutil.log("PREVIEW", f"built {self.draw_mode} preview token={self.token}"
                               + (f" {mesh!r}" if mesh is not None else ""))
        return self.preview

    def refresh(self):
        """Rebuild if settings changed since the last build and auto update is on."""
        token = settings.version_token(self.noise_settings, self.terrain_settings)
        stale = self.preview is None or token != self.token
        wanted = self.auto_update and (self.noise_settings.auto_update or self.terrain_settings.auto_update)
        if stale and (self.preview is None or wanted):
            return self.draw_map()
        return self.preview

    def save(self, path):
        if self.preview is None:
            self.draw_map()
        # 2-D uint8 saves as greyscale, (h, w, 3) uint8 as rgb.
        Image.fromarray(numpy.array(self.preview.image)).save(path)
        logutil.log("PREVIEW", f"saved {path}")
        return path


if __name__ == '__main__':
    draw_mode = sys.argv[1] if len(sys.argv) > 1 else config.PREVIEW_DRAW_MODE
    path = sys.argv[2] if len(sys.argv) > 2 else f"preview_{draw_mode}.png"
    PreviewGenerator(draw_mode=draw_mode).save(path)
