"""
Module execution entry point.

Allows running with: python -m geeked_cli
"""

import sys
from geeked_cli.main import main

if __name__ == "__main__":
    sys.exit(main())
