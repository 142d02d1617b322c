STATE_DIR_NAME = ".taskgraph"
TASKS_DIR = "tasks"
CONFIG_FILE = "config.json"
UPDATE_MARKER_FILE = "update-check.json"

DEFAULT_TAG = "master"
DEFAULT_DOC_FORMAT = "json"
DOC_SUFFIXES = {"json": ".json", "yaml": ".yaml"}

CONFIG_CACHE_TTL_SECONDS = 5.0
MAX_FIX_ITERATIONS = 1000

UPDATE_CHECK_INTERVAL_SECONDS = 24 * 60 * 60
UPDATE_CHECK_TIMEOUT_SECONDS = 5.0
UPDATE_CHECK_URL = "https://pypi.org/pypi/taskgraph/json"

ENV_LOG_LEVEL = "TASKGRAPH_LOG_LEVEL"
ENV_SKIP_UPDATE_CHECK = "TASKGRAPH_SKIP_UPDATE_CHECK"
