"""
Entry point for ``python -m devserve`` and the ``devserve`` script.
"""

import sys
from typing import Optional, Sequence

from .cli import run


def main(argv: Optional[Sequence[str]] = None) -> int:
    return run(argv)


# =============================================================================
# ENTRY POINT
# =============================================================================
# This allows running: python -m devserve

if __name__ == "__main__":
    sys.exit(main())
