"""Project-wide constants."""

EVAL_TOKEN = "eval_dataset"
LAUNCH_MODE = "Eval"

PARTIAL_STATS_FILE = "partial_stats.tsv"
JSON_LOG_FILE = "eval_metrics.json"
DEFAULT_METRICS_FILE = "eval_metrics.tsv"

DEFAULT_TMP_DIR = "tmp"
DEFAULT_RESULT_DIR = "eval_result"
DEFAULT_PROCESS_ITERATIONS_STEP = -1
