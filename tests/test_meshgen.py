import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import mapgen
import meshgen
from meshgen import HeightCurve
from settings import GLOBAL

CORE = 25
IDENTITY = HeightCurve()


def _field(center=(0.0, 0.0), core=CORE, seed=3):
    size = core + 2
    return mapgen.generate_noise_map(size, size, 12.0, 4, 0.5, 2.0, seed, center, GLOBAL)


def _mesh(field, lod=0, flat=False, multiplier=10.0, curve=IDENTITY):
    return meshgen.generate_terrain_mesh(field, multiplier, curve, lod, flat)


def test_scenario_a_mesh():
    field = mapgen.generate_noise_map(241, 241, 50.0, 4, 0.5, 2.0, 0, (0.0, 0.0), GLOBAL)
    mesh = _mesh(field, lod=0, multiplier=20.0)
    assert mesh.vertex_count == 239 * 239
    assert mesh.triangle_count == (239 - 1) ** 2 * 2
    assert mesh.normals.shape == (239 * 239, 3)
    assert mesh.uvs.shape == (239 * 239, 2)


def test_triangle_indices_are_interior_and_contiguous():
    mesh = _mesh(_field())
    tris = mesh.triangles
    assert tris.min() == 0
    assert tris.max() == mesh.vertex_count - 1
    assert len(np.unique(tris)) == mesh.vertex_count


def test_lod_vertex_count_law():
    field = _field()
    counts = {}
    for lod in (0, 1, 2, 3, 6):
        mesh = _mesh(field, lod=lod)
        stride = 1 if lod == 0 else 2 * lod
        per_line = (CORE - 1) // stride + 1
        assert meshgen.vertices_per_line(CORE, lod) == per_line
        assert mesh.vertex_count == per_line * per_line
        assert mesh.triangle_count == (per_line - 1) ** 2 * 2
        counts[lod] = mesh.vertex_count
    assert counts[0] == max(counts.values())


def test_footprint_is_the_same_for_every_lod():
    field = _field()
    half = (CORE - 1) / 2.0
    for lod in (0, 1, 2, 3, 6):
        assert _mesh(field, lod=lod).footprint() == (-half, half, -half, half)


def test_stride_must_divide_the_interior_span():
    field = _field()
    with pytest.raises(ValueError):
        _mesh(field, lod=5)  # stride 10 vs span 24
    with pytest.raises(ValueError):
        _mesh(field, lod=-1)


def test_height_field_must_be_square():
    with pytest.raises(ValueError):
        _mesh(np.zeros((27, 26)))


def test_flat_field_normals_point_up():
    mesh = _mesh(np.full((CORE + 2, CORE + 2), 0.5))
    assert np.allclose(mesh.normals, [0.0, 1.0, 0.0])
    assert np.allclose(mesh.vertices[:, 1], 5.0)


def test_vertex_layout():
    field = np.zeros((CORE + 2, CORE + 2))
    field[1, 1] = 0.25   # first interior sample: top left corner
    mesh = _mesh(field, multiplier=4.0)
    half = (CORE - 1) / 2.0
    # Row-major from the top left (-x, +z) corner.
    assert tuple(mesh.vertices[0]) == (-half, 1.0, half)
    assert tuple(mesh.vertices[1]) == (-half + 1, 0.0, half)
    assert tuple(mesh.vertices[CORE]) == (-half, 0.0, half - 1)
    assert tuple(mesh.uvs[0]) == (0.0, 0.0)
    assert tuple(mesh.uvs[-1]) == (1.0, 1.0)


def test_normals_are_unit_length():
    mesh = _mesh(_field())
    assert np.allclose(np.linalg.norm(mesh.normals, axis=1), 1.0, atol=1e-5)
    assert (mesh.normals[:, 1] > 0).all()


def test_seam_normals_match_between_neighbours():
    size = CORE - 1
    fields = {
        'center': _field((0.0, 0.0)),
        'east': _field((float(size), 0.0)),
        'north': _field((0.0, float(size))),
    }
    for lod in (0, 1, 2):
        n = meshgen.vertices_per_line(CORE, lod)
        meshes = {k: _mesh(f, lod=lod, multiplier=30.0) for k, f in fields.items()}
        grid = lambda k: meshes[k].normals.reshape(n, n, 3)   # [row, column]
        heights = lambda k: meshes[k].vertices[:, 1].reshape(n, n)

        # East neighbour: our last column is its first column.
        assert np.array_equal(heights('center')[:, -1], heights('east')[:, 0])
        assert np.allclose(grid('center')[:, -1], grid('east')[:, 0], atol=1e-5), lod
        # North neighbour (+z): our first row is its last row.
        assert np.array_equal(heights('center')[0, :], heights('north')[-1, :])
        assert np.allclose(grid('center')[0, :], grid('north')[-1, :], atol=1e-5), lod


def test_decimated_normals_match_full_detail():
    field = _field()
    fine = _mesh(field, multiplier=30.0).normals.reshape(CORE, CORE, 3)
    for lod in (1, 2, 3):
        stride = meshgen.lod_increment(lod)
        n = meshgen.vertices_per_line(CORE, lod)
        coarse = _mesh(field, lod=lod, multiplier=30.0).normals.reshape(n, n, 3)
        assert np.allclose(coarse, fine[::stride, ::stride], atol=1e-6)


def test_flat_shading_explodes_vertices():
    smooth = _mesh(_field())
    flat = _mesh(_field(), flat=True)
    assert flat.flat_shaded
    assert flat.triangle_count == smooth.triangle_count
    assert flat.vertex_count == smooth.triangle_count * 3
    assert np.array_equal(flat.triangles.ravel(), np.arange(flat.vertex_count))
    assert np.array_equal(flat.vertices, smooth.vertices[smooth.triangles.ravel()])
    # Every corner of a face carries that face's normal.
    n = flat.normals.reshape(-1, 3, 3)
    assert np.allclose(n[:, 0], n[:, 1]) and np.allclose(n[:, 0], n[:, 2])


def test_mesh_data_is_read_only():
    mesh = _mesh(_field())
    for arr in (mesh.vertices, mesh.uvs, mesh.triangles, mesh.normals):
        with pytest.raises(ValueError):
            arr[0] = 0


def test_height_curve():
    curve = HeightCurve(((1.0, 1.0), (0.0, 0.0), (0.5, 0.1)))
    assert curve.keys[0] == (0.0, 0.0)
    assert float(curve(0.25)) == pytest.approx(0.05)
    assert float(curve(-1.0)) == 0.0
    assert float(curve(2.0)) == 1.0
    assert np.allclose(curve(np.array([0.0, 0.5, 1.0])), [0.0, 0.1, 1.0])
    assert curve == HeightCurve(((0.0, 0.0), (0.5, 0.1), (1.0, 1.0)))


def test_height_curve_applies_before_multiplier():
    field = np.full((CORE + 2, CORE + 2), 0.5)
    mesh = _mesh(field, multiplier=10.0, curve=HeightCurve(((0.0, 0.0), (0.5, 0.2), (1.0, 1.0))))
    assert np.allclose(mesh.vertices[:, 1], 2.0)
