'''
terrain.py -- endless terrain streamed in chunks around a moving viewer

The streamer owns a sparse grid of TerrainChunk objects keyed by integer
coordinate. Chunks are created the first time they come into range and are
then kept for the whole session; out of range chunks are only hidden.

Per chunk the pipeline is:

    no data -> height field requested -> height field ready
            -> (mesh requested -> mesh ready) for each level of detail

Height fields and meshes are built on two JobSchedulers. Their callbacks run
on the thread calling TerrainStreamer.update(), which is also the only thread
touching chunks, so chunk state needs no locking.
'''
# standard library imports
import time

# local imports
import config
import logutil
import mapgen
import meshgen
import settings
import util
from jobs import JobScheduler, SchedulerFull


def select_lod_index(detail_levels, distance):
    """ Index into `detail_levels` for a viewer `distance` away.

    Thresholds are checked in order; each one exceeded moves to the next
    (coarser) entry. The last entry's threshold is the view distance itself,
    so it is never checked.
    """
    lod_index = 0
    for i in range(len(detail_levels) - 1):
        if distance > detail_levels[i].visible_distance_threshold:
            lod_index = i + 1
        else:
            break
    return lod_index


def collider_index(detail_levels):
    """Index of the finest detail level flagged for collision, or None."""
    for i, info in enumerate(detail_levels):
        if info.use_for_collider:
            return i
    return None


class NullChunkView(object):
    """ Scene stand-in that just remembers what it was given.

    The viewer swaps this for renderer.ChunkRenderer; anything with the same
    four methods can be plugged in through TerrainStreamer(view_factory=...).
    """
    def __init__(self, coord, world_position, scale):
        self.coord = coord
        self.world_position = world_position
        self.scale = scale
        self.visible = False
        self.mesh = None
        self.mesh_lod = None
        self.collider = None
        self.colour_map = None
        self.mesh_installs = 0

    def install_mesh(self, mesh, lod):
        self.mesh = mesh
        self.mesh_lod = lod
        self.mesh_installs += 1

    def install_collider(self, mesh):
        self.collider = mesh

    def set_colour_map(self, colour_map):
        self.colour_map = colour_map

    def set_visible(self, visible):
        self.visible = visible


class LODMesh(object):
    """Mesh slot for one level of detail of one chunk."""

    def __init__(self, lod, update_callback, failure_callback=None):
        self.lod = lod
        self.mesh = None
        self.has_requested_mesh = False
        self.has_mesh = False
        self.update_callback = update_callback
        self.failure_callback = failure_callback

    def on_mesh_data_received(self, result):
        if not result.ok:
            # Back to "not requested" so the slot can be asked for again.
            self.has_requested_mesh = False
            logutil.log("MESH", f"lod {self.lod} build failed: {result.error!r}", level="ERROR")
            logutil.log("MESH", result.trace, level="ERROR")
            if self.failure_callback is not None:
                self.failure_callback()
            return
        self.mesh = result.value
        self.has_mesh = True
        self.update_callback()

    def request_mesh(self, streamer, map_data):
        if self.has_requested_mesh:
            return False
        if not streamer.request_mesh_data(map_data, self.lod, self.on_mesh_data_received):
            return False
        self.has_requested_mesh = True
        return True

    def __repr__(self):
        state = "ready" if self.has_mesh else ("requested" if self.has_requested_mesh else "empty")
        return f"LODMesh(lod={self.lod} {state})"


class TerrainChunk(object):

    def __init__(self, streamer, coord):
        self.streamer = streamer
        self.coord = coord
        size = streamer.chunk_size
        self.position = (coord[0] * size, coord[1] * size)
        self.bounds = util.Bounds2D(self.position, size)
        scale = streamer.uniform_scale
        world_position = (self.position[0] * scale, 0.0, self.position[1] * scale)
        self.view = streamer.view_factory(coord, world_position, scale)
        self.visible = False
        self.retired = False
        self.set_visible(False)

        self.detail_levels = streamer.detail_levels
        self.lod_meshes = [LODMesh(info.lod, self.update, self.retry_later) for info in self.detail_levels]
        self.failures = 0
        self.collider_index = collider_index(self.detail_levels)
        self.collider_installed = False

        self.map_data = None
        self.map_data_received = False
        self.map_data_requested = False
        self.previous_lod_index = -1
        self.request_map_data()

    def lod_mesh(self, lod):
        """Slot for the configured level of detail `lod`; KeyError if it isn't configured."""
        for lod_mesh in self.lod_meshes:
            if lod_mesh.lod == lod:
                return lod_mesh
        raise KeyError(f"chunk {self.coord} has no level of detail {lod}")

    @property
    def collision_mesh(self):
        if self.collider_index is None:
            return None
        return self.lod_meshes[self.collider_index]

    def request_map_data(self):
        if self.map_data_requested or self.map_data_received:
            return
        self.map_data_requested = self.streamer.request_map_data(self.position, self.on_map_data_received)

    def on_map_data_received(self, result):
        self.map_data_requested = False
        if not result.ok:
            logutil.log("TERRAIN", f"height field for chunk {self.coord} failed: {result.error!r}", level="ERROR")
            logutil.log("TERRAIN", result.trace, level="ERROR")
            self.retry_later()
            return
        self.map_data = result.value
        self.map_data_received = True
        self.view.set_colour_map(self.map_data.colour_map)
        self.update()

    def update(self):
        """Re-evaluate visibility, level of detail and collision for the current viewer."""
        if self.retired:
            return
        viewer = self.streamer.viewer_position
        distance = self.bounds.distance(viewer)
        visible = distance <= self.streamer.max_view_distance
        if not visible:
            self.set_visible(False)
            return

        if not self.map_data_received:
            # Nothing to show until the height field arrives.
            self.request_map_data()
            if not self.map_data_requested:
                self.streamer.defer(self)
            return

        lod_index = select_lod_index(self.detail_levels, distance)
        if lod_index != self.previous_lod_index:
            lod_mesh = self.lod_meshes[lod_index]
            if lod_mesh.has_mesh:
                logutil.log("TERRAIN", f"chunk {self.coord} lod {self.previous_lod_index} -> {lod_index}")
                self.previous_lod_index = lod_index
                self.view.install_mesh(lod_mesh.mesh, lod_mesh.lod)
            elif not lod_mesh.has_requested_mesh:
                if not lod_mesh.request_mesh(self.streamer, self.map_data):
                    self.streamer.defer(self)

        collider = self.collision_mesh
        if collider is not None and lod_index <= self.collider_index:
            if collider.has_mesh:
                if not self.collider_installed:
                    self.view.install_collider(collider.mesh)
                    self.collider_installed = True
            elif not collider.has_requested_mesh:
                if not collider.request_mesh(self.streamer, self.map_data):
                    self.streamer.defer(self)

        self.set_visible(True)

    def retry_later(self):
        """Re-evaluate on the next tick after a failed job, up to MAX_JOB_RETRIES times."""
        self.failures += 1
        if self.failures <= getattr(config, 'MAX_JOB_RETRIES', 3):
            self.streamer.defer(self)
        else:
            logutil.log("TERRAIN", f"chunk {self.coord} failed {self.failures} jobs, "
                                   f"waiting for the next visibility pass", level="WARN")

    def set_visible(self, visible):
        self.visible = visible
        self.view.set_visible(visible)
        if visible:
            self.streamer.visible_last_update[self.coord] = self
        else:
            self.streamer.visible_last_update.pop(self.coord, None)

    def is_visible(self):
        return self.visible

    def __repr__(self):
        return f"TerrainChunk({self.coord} data={self.map_data_received} lod={self.previous_lod_index})"


def build_mesh_job(map_data, lod, height_multiplier, height_curve, use_flat_shading):
    return meshgen.generate_terrain_mesh(
        map_data.height_map, height_multiplier, height_curve, lod, use_flat_shading)


class TerrainStreamer(object):
    """ Streams terrain chunks in and out around a viewer.

    Call update(viewer_position) once per frame with the viewer position in
    world units, (x, z) or (x, y, z).
    """

    def __init__(self, noise_settings=None, terrain_settings=None, view_factory=NullChunkView,
                 data_jobs=None, mesh_jobs=None, core_size=None,
                 move_threshold=config.VIEWER_MOVE_THRESHOLD):
        self.noise_settings = noise_settings if noise_settings is not None else settings.NoiseSettings()
        self.terrain_settings = terrain_settings if terrain_settings is not None else settings.TerrainSettings()
        self.view_factory = view_factory
        self.data_jobs = data_jobs if data_jobs is not None else JobScheduler(
            "data", max_workers=getattr(config, 'DATA_WORKERS', 2))
        self.mesh_jobs = mesh_jobs if mesh_jobs is not None else JobScheduler(
            "mesh", max_workers=getattr(config, 'MESH_WORKERS', 2))
        self.core_size = core_size
        self.move_threshold = move_threshold
        self.sqr_move_threshold = move_threshold * move_threshold

        self.chunks = {}
        self.visible_last_update = {}
        self._deferred = {}
        self.viewer_position = (0.0, 0.0)
        self.old_viewer_position = None
        self.tick_id = 0
        self.visibility_updates = 0
        self._apply_snapshot()

    def _apply_snapshot(self):
        self.snapshot = settings.snapshot(self.noise_settings, self.terrain_settings, self.core_size)
        self.settings_token = settings.version_token(self.noise_settings, self.terrain_settings)
        self.detail_levels = self.terrain_settings.detail_levels
        self.uniform_scale = self.terrain_settings.uniform_scale
        self.max_view_distance = self.detail_levels[-1].visible_distance_threshold
        self.chunk_size = self.snapshot.core_size - 1
        self.chunks_visible_in_view_dist = int(round(self.max_view_distance / self.chunk_size))
        # Fail here rather than on a worker if a level of detail can't be built.
        for info in self.detail_levels:
            meshgen.sample_lines(self.snapshot.core_size + 2, meshgen.lod_increment(info.lod))

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False

    def settings_changed(self):
        return settings.version_token(self.noise_settings, self.terrain_settings) != self.settings_token

    def apply_settings(self):
        """ Start over with the current settings.

        Every existing chunk is hidden and retired; results still in flight for
        them are stored on the retired chunk and never shown.
        """
        for chunk in self.chunks.values():
            chunk.set_visible(False)
            chunk.retired = True
        self.chunks = {}
        self.visible_last_update = {}
        self._deferred = {}
        self._apply_snapshot()
        self.old_viewer_position = None
        logutil.log("TERRAIN", f"settings applied, token={self.settings_token}")

    def request_map_data(self, center, callback):
        try:
            self.data_jobs.submit(mapgen.generate_map_data, callback, center, self.snapshot,
                                  name=f"map_data{center}")
        except SchedulerFull as e:
            logutil.log("TERRAIN", f"deferring height field for {center}: {e}", level="WARN")
            return False
        return True

    def request_mesh_data(self, map_data, lod, callback):
        snap = self.snapshot
        try:
            self.mesh_jobs.submit(build_mesh_job, callback, map_data, lod,
                                  snap.height_multiplier, snap.height_curve, snap.use_flat_shading,
                                  name=f"mesh_lod{lod}")
        except SchedulerFull as e:
            logutil.log("TERRAIN", f"deferring mesh lod {lod}: {e}", level="WARN")
            return False
        return True

    def defer(self, chunk):
        """Re-evaluate `chunk` next tick, after a submit was pushed back."""
        self._deferred[chunk.coord] = chunk

    def create_chunk(self, coord):
        chunk = TerrainChunk(self, coord)
        self.chunks[coord] = chunk
        if not chunk.map_data_requested:
            self.defer(chunk)
        logutil.log("TERRAIN", f"new chunk {coord}")
        return chunk

    def drain(self):
        return self.data_jobs.drain() + self.mesh_jobs.drain()

    def update(self, viewer_position):
        self.tick_id += 1
        logutil.set_tick(self.tick_id)
        self.drain()

        if len(viewer_position) == 3:
            x, z = viewer_position[0], viewer_position[2]
        else:
            x, z = viewer_position
        self.viewer_position = (x / self.uniform_scale, z / self.uniform_scale)

        if (self.old_viewer_position is None or
                util.sqr_distance(self.old_viewer_position, self.viewer_position) > self.sqr_move_threshold):
            self.old_viewer_position = self.viewer_position
            self.update_visible_chunks()

        if self._deferred:
            deferred = self._deferred
            self._deferred = {}
            for chunk in deferred.values():
                chunk.update()

    def update_visible_chunks(self):
        t0 = time.perf_counter()
        self.visibility_updates += 1
        current = util.chunk_coord(self.viewer_position, self.chunk_size)
        in_range = set(util.ring(current, self.chunks_visible_in_view_dist))

        for coord, chunk in list(self.visible_last_update.items()):
            if coord not in in_range:
                chunk.set_visible(False)

        created = 0
        for coord in util.ring(current, self.chunks_visible_in_view_dist):
            chunk = self.chunks.get(coord)
            if chunk is not None:
                chunk.update()
            else:
                self.create_chunk(coord)
                created += 1
        ms = (time.perf_counter() - t0) * 1000.0
        logutil.log("TERRAIN", f"visibility update center={current} created={created} "
                               f"visible={len(self.visible_last_update)} total={len(self.chunks)} ms={ms:.1f}")

    def visible_chunks(self):
        return list(self.visible_last_update.values())

    def flush(self, timeout=30.0):
        """ Wait for every outstanding job and run its callback.

        Callbacks can queue more work (a height field leads to mesh requests),
        so this loops until both schedulers are idle. Returns False on timeout.
        """
        deadline = time.perf_counter() + timeout
        while True:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                return False
            if not self.data_jobs.wait(remaining):
                return False
            self.data_jobs.drain()
            remaining = max(0.0, deadline - time.perf_counter())
            if not self.mesh_jobs.wait(remaining):
                return False
            self.mesh_jobs.drain()
            if self.data_jobs.pending == 0 and self.mesh_jobs.pending == 0:
                return True

    def shutdown(self):
        self.data_jobs.shutdown()
        self.mesh_jobs.shutdown()
