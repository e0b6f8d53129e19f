import sys
from pathlib import Path
import os

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("METADATA_BACKEND", "memory")
os.environ.setdefault("QUEUE_BACKEND", "memory")
