#!/usr/bin/env python3
"""Start the Bucket Budget app with ``streamlit run``.

Extra command-line arguments are handed to Streamlit unchanged, e.g.
``python run_dashboard.py --server.port 8600``.
"""

import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
APP_DIR = PROJECT_ROOT / "bucket_dashboard"


def build_command(args):
    return [sys.executable, "-m", "streamlit", "run", str(APP_DIR / "Home.py"), *args]


def main(argv=None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    # pages/ is looked up next to the entry script
    completed = subprocess.run(build_command(args), cwd=APP_DIR, check=False)
    return completed.returncode


if __name__ == "__main__":
    sys.exit(main())
