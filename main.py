"""CLI entrypoint for the print camera service."""

import sys

from prusacam.cli import main

if __name__ == "__main__":
    sys.exit(main())
