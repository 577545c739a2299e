STATE_DIR_NAME = ".task_engine"
CONFIG_FILE = "config.yaml"
SNAPSHOT_FILE = "tasks_snapshot.yaml"
SNAPSHOT_VERSION = 1

DEFAULT_SUCCESS_RATE = 0.85
DEFAULT_MIN_INCREMENT = 0.0
DEFAULT_MAX_INCREMENT = 15.0
DEFAULT_TICK_INTERVAL_SECONDS = 1.0
DEFAULT_TICK_DURATION_MS = 1000

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

TIMEOUT_WARNING_RATIO = 0.8  # share of the timeout budget that raises a monitor alert
RECOMMENDATION_TOP_N = 3
EVENT_HISTORY_LIMIT = 1000
