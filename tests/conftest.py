import os
import tempfile

# Loggers are built at import time; keep their files out of the source tree.
os.environ.setdefault("PEBBLECODE_LOG_DIR", tempfile.mkdtemp(prefix="pebblecode-logs-"))
