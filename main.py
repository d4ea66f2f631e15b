import math
import sys
import time

# pyglet imports
import pyglet
from pyglet.window import key, mouse
import pyglet.gl as gl
from pyglet.math import Mat4, Vec3

# local module imports
import config
import logutil
import renderer
import settings
import shaders
import terrain


class FlyCamera(object):
    """ Free-flying viewer. Yaw turns about +y, pitch is clamped to +-89 degrees.

    Movement is driven by the keys currently held in a KeyStateHandler.
    """
    MOUSE_SENSITIVITY = 0.15

    def __init__(self, position, yaw=0.0, pitch=-20.0):
        self.position = tuple(position)
        self.yaw = yaw
        self.pitch = pitch

    def look(self, dx, dy):
        self.yaw += dx * self.MOUSE_SENSITIVITY
        self.pitch = max(-89.0, min(89.0, self.pitch + dy * self.MOUSE_SENSITIVITY))

    def forward(self):
        yaw = math.radians(self.yaw)
        pitch = math.radians(self.pitch)
        return (math.sin(yaw) * math.cos(pitch), math.sin(pitch), -math.cos(yaw) * math.cos(pitch))

    def wish_direction(self, keys):
        """Unit-ish (x, y, z) move direction for the held keys; ground-plane strafing."""
        yaw = math.radians(self.yaw)
        fx, fy, fz = self.forward()
        rx, rz = math.cos(yaw), math.sin(yaw)
        ahead = keys[key.W] - keys[key.S]
        side = keys[key.D] - keys[key.A]
        climb = keys[key.SPACE] - keys[key.LSHIFT]
        x = fx * ahead + rx * side
        y = fy * ahead + climb
        z = fz * ahead + rz * side
        length = math.sqrt(x * x + y * y + z * z)
        if length > 1.0:
            x, y, z = x / length, y / length, z / length
        return (x, y, z)

    def view_matrix(self):
        # Camera-relative: the shader subtracts the eye position itself.
        fx, fy, fz = self.forward()
        return Mat4.look_at(Vec3(0.0, 0.0, 0.0), Vec3(fx, fy, fz), Vec3(0.0, 1.0, 0.0))


class Window(pyglet.window.Window):

    def __init__(self, *args, **kwargs):
        self.noise_settings = kwargs.pop('noise_settings', None) or settings.NoiseSettings()
        self.terrain_settings = kwargs.pop('terrain_settings', None) or settings.TerrainSettings()
        super(Window, self).__init__(*args, **kwargs)

        self.keys = key.KeyStateHandler()
        self.push_handlers(self.keys)
        self.exclusive = False
        self.camera = FlyCamera(config.VIEWER_START)

        self.program = shaders.create_terrain_shader()
        self.terrain_renderer = renderer.TerrainRenderer(self.program)
        self.streamer = terrain.TerrainStreamer(
            self.noise_settings,
            self.terrain_settings,
            view_factory=self.terrain_renderer.view_factory,
        )
        self.configure_shader()

        self.label = pyglet.text.Label('', font_name='Arial', font_size=12,
            x=10, y=self.height - 10, anchor_x='left', anchor_y='top',
            color=(20, 20, 20, 255))
        self.tick_ms = 0.0
        pyglet.clock.schedule_interval(self.update, 1.0 / config.TICKS_PER_SEC)

    def configure_shader(self):
        """Push the uniforms that only change with terrain settings."""
        ts = self.terrain_settings
        self.view_distance = self.streamer.max_view_distance * ts.uniform_scale
        self.program['u_light_dir'] = config.LIGHT_DIR
        self.program['u_fog_color'] = config.FOG_COLOR
        self.program['u_fog_start'] = self.view_distance * 0.6
        self.program['u_fog_end'] = self.view_distance
        self.program['u_min_height'] = ts.min_height
        self.program['u_max_height'] = ts.max_height

    def set_exclusive_mouse(self, exclusive):
        super(Window, self).set_exclusive_mouse(exclusive)
        self.exclusive = exclusive

    def update(self, dt):
        """ Scheduled tick: fly, keep above the collider, then stream.

        dt is capped so a stalled frame does not launch the viewer.
        """
        t0 = time.perf_counter()
        dt = min(dt, 0.2)
        speed = config.FLYING_SPEED * self.terrain_settings.uniform_scale
        dx, dy, dz = self.camera.wish_direction(self.keys)
        x, y, z = self.camera.position
        x += dx * speed * dt
        y += dy * speed * dt
        z += dz * speed * dt
        ground = self.terrain_renderer.ground_height(x, z)
        if ground is not None:
            y = max(y, ground + 2.0)
        self.camera.position = (x, y, z)

        if self.streamer.settings_changed():
            self.streamer.apply_settings()
            self.configure_shader()
        self.streamer.update(self.camera.position)
        self.tick_ms = (time.perf_counter() - t0) * 1000.0

    def on_mouse_press(self, x, y, button, modifiers):
        if button == mouse.LEFT and not self.exclusive:
            self.set_exclusive_mouse(True)

    def on_mouse_motion(self, x, y, dx, dy):
        if self.exclusive:
            self.camera.look(dx, dy)

    def on_key_press(self, symbol, modifiers):
        if symbol == key.ESCAPE:
            # Release the mouse instead of closing.
            self.set_exclusive_mouse(False)
            return pyglet.event.EVENT_HANDLED
        if symbol == key.F:
            ts = self.terrain_settings
            ts.update(use_flat_shading=not ts.use_flat_shading)
            logutil.log("MAIN", f"flat shading {ts.use_flat_shading}")
        elif symbol == key.G:
            ts = self.terrain_settings
            ts.update(use_falloff=not ts.use_falloff)
            logutil.log("MAIN", f"falloff {ts.use_falloff}")

    def on_resize(self, width, height):
        super(Window, self).on_resize(width, height)
        self.label.y = height - 10

    def on_close(self):
        self.streamer.shutdown()
        super(Window, self).on_close()

    def set_3d(self):
        width, height = self.get_framebuffer_size()
        gl.glViewport(0, 0, width, height)
        gl.glEnable(gl.GL_DEPTH_TEST)
        projection = Mat4.perspective_projection(
            width / float(max(1, height)), 0.5, self.view_distance * 1.1, 65)
        self.terrain_renderer.set_matrices(projection, self.camera.view_matrix(), self.camera.position)

    def set_2d(self):
        width, height = self.get_framebuffer_size()
        gl.glViewport(0, 0, width, height)
        gl.glDisable(gl.GL_DEPTH_TEST)

    def on_draw(self):
        self.clear()
        self.set_3d()
        self.terrain_renderer.draw()
        self.set_2d()
        self.draw_label()

    def draw_label(self):
        shown, total = self.terrain_renderer.stats()
        x, y, z = self.camera.position
        self.label.text = (
            f"{pyglet.clock.get_frequency():.0f} fps  ({x:.0f}, {y:.0f}, {z:.0f})  "
            f"chunks {shown}/{total}  jobs data={self.streamer.data_jobs.pending} "
            f"mesh={self.streamer.mesh_jobs.pending}  tick {self.tick_ms:.1f}ms"
        )
        self.label.draw()


def setup():
    gl.glClearColor(config.FOG_COLOR[0], config.FOG_COLOR[1], config.FOG_COLOR[2], 1)
    gl.glEnable(gl.GL_CULL_FACE)
    gl.glCullFace(gl.GL_BACK)


def main():
    noise_settings = settings.NoiseSettings()
    if len(sys.argv) > 1:
        try:
            noise_settings.update(seed=int(sys.argv[1]))
        except ValueError:
            logutil.log("MAIN", f"ignoring seed argument {sys.argv[1]!r}", level="WARN")
    logutil.log("MAIN", f"seed {noise_settings.seed}")
    window = Window(width=1024, height=640, caption='Terrain', resizable=True, vsync=True,
                    noise_settings=noise_settings)
    setup()
    try:
        pyglet.app.run()
    finally:
        window.streamer.shutdown()


if __name__ == '__main__':
    main()
