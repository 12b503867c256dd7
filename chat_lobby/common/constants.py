"""Shared constants for server and client."""

# Network
DEFAULT_HOST = "localhost"
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_PORT = 55555

# Framing
MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # 10 MiB payload cap
READ_TIMEOUT = 5.0  # seconds per frame read once data is flowing
WRITE_TIMEOUT = 5.0  # seconds to flush one frame
CONNECT_TIMEOUT = 10.0
INBOX_SIZE = 64  # frames buffered per connection before the pump waits

# Server loop
TICK_INTERVAL = 0.1  # 100ms between ticks

# World rules
MAX_RADIUS = 20.0  # moves must stay within this horizontal distance of origin
# Client steps stop this far inside MAX_RADIUS so float32 rounding stays legal
EDGE_MARGIN = 1e-3
SPAWN_RADIUS = 10.0
INITIAL_SKIN_COUNT = 10  # spawn skins are 0..9
SKIN_CHANGE_RANGE = 1000  # skin changes pick 0..999
WHISPER_RADIUS = 3.0

# Chat commands
WHISPER_PREFIX = "/whisper "
SKIN_COMMAND = "/setskin"

# Client reconciliation
CORRECTION_THRESHOLD = 0.1  # local avatar: snap back beyond this
MOTION_THRESHOLD = 0.01  # remote avatars: animate beyond this

# Client frame loop / rendering
FRAME_INTERVAL = 0.05
MOVE_STEP = 1.0
AVATAR_MOVE_SPEED = 4.0  # units per second
SPEECH_DURATION = 4.0
