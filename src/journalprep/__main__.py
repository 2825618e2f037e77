"""Allow running the package with ``python -m journalprep``."""

import sys

from journalprep.cli import main

if __name__ == "__main__":
    sys.exit(main())
