# scripts/annotate.py

import os
import sys

# --- Path Setup ---
# Run from a checkout without installing the package
SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from labelkit.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
