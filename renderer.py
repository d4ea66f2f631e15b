import numpy as np
import pyglet
import pyglet.gl as gl

import logutil


def vertex_colours(mesh, colour_map):
    """Per-vertex rgb (0..255) looked up from the chunk colour map by uv."""
    if colour_map is None:
        return np.full((mesh.vertex_count, 3), 200.0, dtype='f4')
    rows, cols = colour_map.shape[:2]
    ix = np.clip(np.rint(mesh.uvs[:, 0] * (cols - 1)).astype(np.int64), 0, cols - 1)
    iy = np.clip(np.rint(mesh.uvs[:, 1] * (rows - 1)).astype(np.int64), 0, rows - 1)
    return colour_map[iy, ix].astype('f4')


class ChunkRenderer(object):
    """GPU side of one terrain chunk: the view the streamer installs meshes into."""

    def __init__(self, terrain_renderer, coord, world_position, scale):
        self.terrain_renderer = terrain_renderer
        self.coord = coord
        self.world_position = np.array(world_position, dtype='f4')
        self.scale = scale
        self.batch = None
        self.vt = None
        self.visible = False
        self.colour_map = None
        self.collider = None
        self.mesh_lod = None

    def _release(self):
        if self.vt is not None:
            self.vt.delete()
        self.vt = None
        self.batch = None

    def install_mesh(self, mesh, lod):
        self._release()
        # Expand indexed triangles into a flat triangle list.
        tri = mesh.triangles.ravel()
        positions = mesh.vertices[tri] * self.scale + self.world_position
        normals = mesh.normals[tri]
        colours = vertex_colours(mesh, self.colour_map)[tri]
        self.batch = pyglet.graphics.Batch()
        self.vt = self.terrain_renderer.program.vertex_list(
            len(tri),
            gl.GL_TRIANGLES,
            batch=self.batch,
            position=('f', positions.ravel().astype('f4')),
            normal=('f', normals.ravel().astype('f4')),
            color=('f', colours.ravel().astype('f4')),
        )
        self.mesh_lod = lod
        logutil.log("RENDER", f"chunk {self.coord} lod {lod} triangles={mesh.triangle_count}", level="DEBUG")

    def install_collider(self, mesh):
        # Kept in world units so ground queries need no transform.
        self.collider = (mesh.vertices * self.scale + self.world_position, mesh.triangles)

    def set_colour_map(self, colour_map):
        self.colour_map = colour_map

    def set_visible(self, visible):
        self.visible = visible

    def draw(self):
        if self.visible and self.batch is not None:
            self.batch.draw()


class TerrainRenderer(object):

    def __init__(self, program):
        self.program = program
        self.chunks = {}

    def view_factory(self, coord, world_position, scale):
        chunk = ChunkRenderer(self, coord, world_position, scale)
        old = self.chunks.get(coord)
        if old is not None:
            old._release()
        self.chunks[coord] = chunk
        return chunk

    def set_matrices(self, projection, view, camera_pos):
        # Convert pyglet Mat4 to column-major numpy arrays
        proj = np.array(list(projection), dtype='f4').reshape((4, 4), order='F')
        view_mat = np.array(list(view), dtype='f4').reshape((4, 4), order='F')
        # Positions arrive camera-relative (u_camera_pos), so drop the translation.
        view_mat[3, :3] = 0.0
        self.program['u_projection'] = proj.ravel(order='F')
        self.program['u_view'] = view_mat.ravel(order='F')
        self.program['u_camera_pos'] = tuple(camera_pos)

    def ground_height(self, x, z):
        """Highest collider vertex near (x, z), or None when no collider covers it."""
        best = None
        for chunk in self.chunks.values():
            if chunk.collider is None or not chunk.visible:
                continue
            vertices = chunk.collider[0]
            d2 = (vertices[:, 0] - x) ** 2 + (vertices[:, 2] - z) ** 2
            i = int(np.argmin(d2))
            if d2[i] <= (4.0 * chunk.scale) ** 2:
                y = float(vertices[i, 1])
                best = y if best is None else max(best, y)
        return best

    def draw(self):
        self.program.bind()
        for chunk in self.chunks.values():
            chunk.draw()
        self.program.unbind()

    def stats(self):
        shown = [c for c in self.chunks.values() if c.visible and c.vt is not None]
        return len(shown), len(self.chunks)
