# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

from __future__ import annotations

import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"
