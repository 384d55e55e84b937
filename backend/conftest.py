# Ensure 'backend/' is on sys.path so 'import app' works
# regardless of the directory pytest is started from.
from pathlib import Path
import sys

_BACKEND_ROOT = Path(__file__).resolve().parent
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))
