TICKS_PER_SEC = 60

# Number of vertices per chunk edge at LOD 0 (core of the height field; the
# field itself carries a one-sample border on every side). core - 1 must be
# divisible by every LOD stride in use (240 takes strides 2 through 12).
CHUNK_CORE_SIZE = 241
# Flat shading triples vertex counts, so chunks get smaller (120 takes the
# same strides).
FLAT_CHUNK_CORE_SIZE = 121
MAX_LOD = 6

# Viewer has to move this far (in terrain units) before chunk visibility is
# recomputed.
VIEWER_MOVE_THRESHOLD = 15.0

# (lod, visible distance threshold, use for collider)
DETAIL_LEVELS = (
    (0, 200.0, False),
    (1, 400.0, True),
    (4, 600.0, False),
)

# Noise defaults
NOISE_SEED = 0
NOISE_SCALE = 50.0
NOISE_OCTAVES = 4
NOISE_PERSISTENCE = 0.5
NOISE_LACUNARITY = 2.0
NOISE_OFFSET = (0.0, 0.0)
NORMALIZE_MODE = 'global'
MIN_NOISE_SCALE = 0.0001
# Empirical divisor used by the global normalization. Changing it changes the
# height distribution of every chunk.
GLOBAL_NORMALIZE_FUDGE = 1.55

# Terrain defaults
UNIFORM_SCALE = 2.5
MESH_HEIGHT_MULTIPLIER = 30.0
# (time, value) keys for the height remap curve; linear between keys.
MESH_HEIGHT_CURVE = ((0.0, 0.0), (0.3, 0.05), (1.0, 1.0))
USE_FLAT_SHADING = False
USE_FALLOFF_MAP = False
FALLOFF_A = 3.0
FALLOFF_B = 2.2

# (name, height, rgb)
REGIONS = (
    ('Deep Water', 0.0, (37, 64, 128)),
    ('Water', 0.3, (54, 98, 189)),
    ('Sand', 0.4, (210, 208, 125)),
    ('Grass', 0.45, (86, 152, 23)),
    ('Grass 2', 0.55, (62, 107, 18)),
    ('Rock', 0.6, (90, 69, 60)),
    ('Rock 2', 0.7, (75, 60, 53)),
    ('Snow', 0.9, (255, 255, 255)),
)

# Background workers. Height fields and meshes get separate pools so a burst
# of mesh builds never starves data generation.
DATA_WORKERS = 2
MESH_WORKERS = 2
# Jobs accepted per pool before submit() pushes back.
MAX_PENDING_JOBS = 64
# Failed jobs a chunk retries on the next tick before waiting for the viewer
# to move.
MAX_JOB_RETRIES = 3

# Preview (editor) defaults
PREVIEW_DRAW_MODE = 'mesh'
PREVIEW_LOD = 0
PREVIEW_AUTO_UPDATE = True

# Viewer window
FLYING_SPEED = 60.0
VIEWER_START = (0.0, 120.0, 0.0)
FOG_COLOR = (0.5, 0.69, 1.0)
LIGHT_DIR = (0.35, 1.0, 0.65)

# Enable ANSI colors in logs.
LOG_COLOR = True

# Log chunk creation / LOD switches.
LOG_STREAMING = True

# Log every job submit and completion.
LOG_JOBS = False
