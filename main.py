#!/usr/bin/env python3
"""StudyFocus — entry point.

Run with:
    python main.py status
    python -m studyfocus status
"""

import sys

from studyfocus.__main__ import main


if __name__ == "__main__":
    sys.exit(main())
