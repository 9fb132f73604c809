"""
Centralized defaults for region, retry and concurrency settings.

Edit these constants to set project defaults. Environment variables and CLI
flags override these values at runtime (flag > env > constant).
"""

import os
from typing import Optional

# Default AWS region. Override via CLI `--region` or env `S3TOOL_REGION`.
DEFAULT_REGION: str = "eu-west-1"

# Factor applied to the retry delay after every failed attempt.
DEFAULT_BACKOFF: float = 1.5

# Number of files uploaded at the same time. Env `S3TOOL_CONCURRENCY`.
DEFAULT_CONCURRENCY: int = 8

# Attempts per object (or delete batch) before giving up.
DEFAULT_MAX_ATTEMPTS: int = 5

# Value sent as ServerSideEncryption when `--sse` is given.
SSE_ALGORITHM: str = "AES256"

# S3 accepts at most this many keys per DeleteObjects request.
DELETE_BATCH_SIZE: int = 1000


def env_region() -> Optional[str]:
    return os.getenv("S3TOOL_REGION") or None


def env_concurrency() -> Optional[int]:
    raw = os.getenv("S3TOOL_CONCURRENCY")
    if not raw:
        return None
    try:
        return max(1, int(raw))
    except ValueError:
        return None
