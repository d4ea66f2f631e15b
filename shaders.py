from pyglet.graphics.shader import Shader, ShaderProgram


# Chunk vertices arrive in world units. The camera position is subtracted
# before the view transform so far-away chunks keep their precision.
TERRAIN_VERTEX = """
#version 330 core

uniform mat4 u_projection;
uniform mat4 u_view;
uniform vec3 u_camera_pos;

in vec3 position;
in vec3 normal;
in vec3 color;

out vec3 v_world_normal;
out vec3 v_albedo;
out float v_height;
out float v_depth;

void main() {
    vec4 eye = u_view * vec4(position - u_camera_pos, 1.0);
    gl_Position = u_projection * eye;
    v_world_normal = normal;
    v_albedo = color / 255.0;
    v_height = position.y;
    v_depth = -eye.z;
}
"""


# Region colours come per vertex from the chunk colour map. Height inside
# [u_min_height, u_max_height] brightens peaks a little, steep faces go darker,
# and distance fades into the fog colour.
TERRAIN_FRAGMENT = """
#version 330 core

uniform vec3 u_light_dir;
uniform vec3 u_fog_color;
uniform float u_fog_start;
uniform float u_fog_end;
uniform float u_min_height;
uniform float u_max_height;

in vec3 v_world_normal;
in vec3 v_albedo;
in float v_height;
in float v_depth;

out vec4 out_color;

void main() {
    vec3 n = normalize(v_world_normal);
    float diffuse = max(dot(n, normalize(u_light_dir)), 0.0);
    float span = max(u_max_height - u_min_height, 1e-4);
    float height01 = clamp((v_height - u_min_height) / span, 0.0, 1.0);
    float slope = 1.0 - n.y;
    vec3 albedo = v_albedo * mix(0.9, 1.1, height01) * (1.0 - 0.35 * slope);
    vec3 shaded = albedo * (0.35 + 0.65 * diffuse);
    float fog = smoothstep(u_fog_start, u_fog_end, v_depth);
    out_color = vec4(mix(shaded, u_fog_color, fog), 1.0);
}
"""


def create_terrain_shader():
    return ShaderProgram(Shader(TERRAIN_VERTEX, "vertex"), Shader(TERRAIN_FRAGMENT, "fragment"))
