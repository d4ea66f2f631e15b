'''
meshgen.py -- turns a bordered height field into terrain mesh geometry

The height field carries one extra sample on every side. Those border samples
become vertices that only take part in normal calculation, so the normals
along a chunk edge come out the same as the neighbouring chunk's.
'''
import enum

import numpy


class VertexKind(enum.IntEnum):
    INTERIOR = 0
    BORDER = 1


class HeightCurve(object):
    """ Piecewise linear remap of normalized heights.

    `keys` are (time, value) pairs. Inputs outside the key range take the
    value of the nearest end key. Instances are immutable and safe to share
    between worker threads.
    """
    def __init__(self, keys=((0.0, 0.0), (1.0, 1.0))):
        keys = sorted((float(t), float(v)) for t, v in keys)
        if not keys:
            raise ValueError("a height curve needs at least one key")
        self.keys = tuple(keys)
        self._times = numpy.array([k[0] for k in keys])
        self._values = numpy.array([k[1] for k in keys])

    def __call__(self, t):
        return numpy.interp(t, self._times, self._values)

    def __eq__(self, other):
        return isinstance(other, HeightCurve) and self.keys == other.keys

    def __hash__(self):
        return hash(self.keys)

    def __repr__(self):
        return f"HeightCurve({self.keys!r})"


def lod_increment(lod):
    """Sample stride used for a level of detail."""
    if lod < 0:
        raise ValueError(f"level of detail must be >= 0, got {lod}")
    return 1 if lod == 0 else lod * 2


def sample_lines(bordered_size, increment):
    """ Grid lines sampled along each axis of a bordered field.

    Always the two border lines plus the interior lines 1, 1+increment, ...,
    bordered_size-2, so the mesh edges sit at the same place for every LOD.
    """
    span = bordered_size - 3
    if span < 1:
        raise ValueError(f"height field of size {bordered_size} is too small for a mesh")
    if span % increment:
        raise ValueError(
            f"stride {increment} does not divide the interior span {span} "
            f"of a {bordered_size}x{bordered_size} height field")
    return numpy.concatenate(([0], numpy.arange(1, bordered_size - 1, increment), [bordered_size - 1]))


def vertices_per_line(core_size, lod):
    return (core_size - 1) // lod_increment(lod) + 1


def _face_normals(a, b, c):
    return numpy.cross(b - a, c - a)


def _normalized(v):
    length = numpy.linalg.norm(v, axis=-1, keepdims=True)
    length[length == 0] = 1.0
    return v / length


class MeshData(object):
    """ Finalized terrain geometry.

    vertices (n, 3) float32, uvs (n, 2) float32, triangles (m, 3) int32 and
    normals (n, 3) float32. The arrays are read-only.
    """
    def __init__(self, vertices, uvs, triangles, normals, flat_shaded, lod):
        self.vertices = vertices.astype(numpy.float32)
        self.uvs = uvs.astype(numpy.float32)
        self.triangles = triangles.astype(numpy.int32)
        self.normals = normals.astype(numpy.float32)
        self.flat_shaded = flat_shaded
        self.lod = lod
        for arr in (self.vertices, self.uvs, self.triangles, self.normals):
            arr.flags.writeable = False

    @property
    def vertex_count(self):
        return len(self.vertices)

    @property
    def triangle_count(self):
        return len(self.triangles)

    def footprint(self):
        """(min x, max x, min z, max z) of the vertex positions."""
        xs = self.vertices[:, 0]
        zs = self.vertices[:, 2]
        return float(xs.min()), float(xs.max()), float(zs.min()), float(zs.max())

    def __repr__(self):
        return f"MeshData(lod={self.lod}, vertices={self.vertex_count}, triangles={self.triangle_count})"


class MeshBuilder(object):
    """ Mutable build state for one mesh.

    Interior and border vertices live in separate arrays. Every grid point gets
    a (kind, index) handle so triangles are built the same way for both.
    """
    def __init__(self, height_map, height_multiplier, height_curve, lod, use_flat_shading):
        height_map = numpy.asarray(height_map, dtype=numpy.float64)
        if height_map.ndim != 2 or height_map.shape[0] != height_map.shape[1]:
            raise ValueError(f"height field must be square, got shape {height_map.shape}")
        self.height_map = height_map
        self.height_multiplier = height_multiplier
        self.height_curve = height_curve
        self.lod = lod
        self.use_flat_shading = use_flat_shading
        self.bordered_size = height_map.shape[0]
        self.increment = lod_increment(lod)
        self.lines = sample_lines(self.bordered_size, self.increment)

        self.kinds = None
        self.indices = None
        self.vertices = None
        self.uvs = None
        self.border_vertices = None
        self.triangles = None
        self.border_triangles = None

    def _assign_handles(self):
        n = len(self.lines)
        kinds = numpy.full((n, n), VertexKind.BORDER, dtype=numpy.int8)
        kinds[1:-1, 1:-1] = VertexKind.INTERIOR
        indices = numpy.zeros((n, n), dtype=numpy.int64)
        # Both kinds count up in row-major order over the sampled grid.
        interior = kinds == VertexKind.INTERIOR
        indices[interior] = numpy.arange(int(interior.sum()))
        indices[~interior] = numpy.arange(int((~interior).sum()))
        self.kinds = kinds
        self.indices = indices

    def _add_vertices(self):
        span = self.bordered_size - 3
        top_left_x = span / -2.0
        top_left_z = span / 2.0
        # Arrays here are indexed [row=y, column=x].
        ys, xs = numpy.meshgrid(self.lines, self.lines, indexing='ij')
        heights = self.height_map[xs, ys]
        curved = numpy.asarray(self.height_curve(heights), dtype=numpy.float64)
        percent_x = (xs - 1) / float(span)
        percent_y = (ys - 1) / float(span)
        positions = numpy.stack([
            top_left_x + percent_x * span,
            numpy.broadcast_to(curved * self.height_multiplier, xs.shape),
            top_left_z - percent_y * span,
        ], axis=-1)
        uvs = numpy.stack([percent_x, percent_y], axis=-1)

        interior = self.kinds == VertexKind.INTERIOR
        self.vertices = positions[interior]
        self.uvs = uvs[interior]
        self.border_vertices = positions[~interior]

    def _add_triangles(self):
        k = self.kinds
        i = self.indices

        def corners(arr):
            a = arr[:-1, :-1]
            b = arr[:-1, 1:]
            c = arr[1:, :-1]
            d = arr[1:, 1:]
            # Two triangles per quad: (a, d, c) and (d, a, b).
            tris = numpy.stack([
                numpy.stack([a, d, c], axis=-1),
                numpy.stack([d, a, b], axis=-1),
            ], axis=-2)
            return tris.reshape(-1, 3)

        tri_kinds = corners(k)
        tri_indices = corners(i)
        touches_border = (tri_kinds == VertexKind.BORDER).any(axis=1)
        self.triangles = tri_indices[~touches_border]
        self.border_triangles = (tri_kinds[touches_border], tri_indices[touches_border])

    def _calculate_normals(self):
        if self.increment != 1:
            return self._full_resolution_normals()
        n_interior = len(self.vertices)
        positions = numpy.concatenate([self.vertices, self.border_vertices])
        border_kinds, border_indices = self.border_triangles
        # Map handles onto the combined position array.
        border_global = border_indices + (border_kinds == VertexKind.BORDER) * n_interior
        all_triangles = numpy.concatenate([self.triangles, border_global])

        p = positions[all_triangles]
        faces = _face_normals(p[:, 0], p[:, 1], p[:, 2])
        accumulated = numpy.zeros_like(positions)
        for corner in range(3):
            numpy.add.at(accumulated, all_triangles[:, corner], faces)
        # Border vertex normals are only scaffolding.
        return _normalized(accumulated[:n_interior])

    def _full_resolution_normals(self):
        """ Normals of the stride 1 mesh, picked at this mesh's vertices.

        A decimated fan would reach past the chunk edge by one sample but
        inwards by a whole stride, so the two chunks sharing an edge would
        disagree. The stride 1 fan is the same from both sides.
        """
        fine = MeshBuilder(self.height_map, self.height_multiplier, self.height_curve, 0, False)
        fine._assign_handles()
        fine._add_vertices()
        fine._add_triangles()
        core = self.bordered_size - 2
        grid = fine._calculate_normals().reshape(core, core, 3)
        picks = self.lines[1:-1] - 1
        return grid[numpy.ix_(picks, picks)].reshape(-1, 3)

    def _flat_shading(self):
        flat = self.triangles.reshape(-1)
        vertices = self.vertices[flat]
        uvs = self.uvs[flat]
        triangles = numpy.arange(len(flat)).reshape(-1, 3)
        p = vertices[triangles]
        faces = _normalized(_face_normals(p[:, 0], p[:, 1], p[:, 2]))
        normals = numpy.repeat(faces, 3, axis=0)
        return vertices, uvs, triangles, normals

    def build(self):
        self._assign_handles()
        self._add_vertices()
        self._add_triangles()
        if self.use_flat_shading:
            vertices, uvs, triangles, normals = self._flat_shading()
        else:
            vertices, uvs, triangles = self.vertices, self.uvs, self.triangles
            normals = self._calculate_normals()
        return MeshData(vertices, uvs, triangles, normals, self.use_flat_shading, self.lod)


def generate_terrain_mesh(height_map, height_multiplier, height_curve, lod, use_flat_shading=False):
    return MeshBuilder(height_map, height_multiplier, height_curve, lod, use_flat_shading).build()
