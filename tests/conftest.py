"""Pytest bootstrap ensuring the in-repo redis_mcp package is imported.

Without this, an older installed copy of redis_mcp in site-packages could be
resolved first when running a single test file directly. Kept intentionally tiny.
"""

import os, sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    # Prepend so it wins over any site-packages installation
    sys.path.insert(0, REPO_ROOT)
