"""
main.py — ridgegaze application entry point.

Equivalent to the installed ``ridgegaze`` console script; lets the runner be
started from a source checkout with ``python main.py``.
"""

import sys

from ridgegaze.cli import main

if __name__ == "__main__":
    sys.exit(main())
