"""Entry point for `python -m errwatch`.

Usage:
    python -m errwatch
    ERRWATCH_STORE_BACKEND=file python -m errwatch
"""

from __future__ import annotations

import asyncio

from errwatch.app import main

asyncio.run(main())
