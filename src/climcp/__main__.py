# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

from __future__ import annotations

import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
