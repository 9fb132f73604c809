"""Bulk upload and prefix deletion on top of boto3.

Everything that talks to S3 lives here: client construction, per-object
retries with exponential backoff, concurrency, batching of deletes.
"""

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig as BotoTransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import config as cfg

logger = logging.getLogger(__name__)

RETRYABLE = (BotoCoreError, ClientError, S3UploadFailedError)

ProgressCallback = Callable[[int], None]
RequestCustomizer = Callable[[], Dict[str, str]]


class TransferError(Exception):
    def __init__(self, message: str, results: Optional[List["UploadResult"]] = None) -> None:
        super().__init__(message)
        self.results = results or []


class FileChangedError(TransferError):
    """The local file no longer matches what was enumerated."""


@dataclass(frozen=True)
class TransferConfig:
    backoff_multiplier: float = cfg.DEFAULT_BACKOFF
    concurrency: int = cfg.DEFAULT_CONCURRENCY
    max_attempts: int = cfg.DEFAULT_MAX_ATTEMPTS
    initial_delay: float = 0.5
    max_delay: float = 20.0
    multipart_threshold: int = 8 * 1024 * 1024
    multipart_chunksize: int = 8 * 1024 * 1024
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def retrying(self) -> Retrying:
        """Retry policy for one request: waits initial_delay * backoff_multiplier**n, capped at max_delay."""
        return Retrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=self.backoff_multiplier, max=self.max_delay),
            retry=retry_if_exception_type(RETRYABLE),
            reraise=True,
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )


@dataclass(frozen=True)
class UploadItem:
    local_path: Path
    key: str
    size_bytes: int


@dataclass
class UploadResult:
    key: str
    local_path: Path
    size_bytes: int
    duration_sec: float
    error: Optional[BaseException] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None


def make_s3_client(
    profile: Optional[str],
    region: Optional[str],
    host: Optional[str] = None,
    config: Optional[TransferConfig] = None,
):
    """Build an S3 client for a named profile; `host` selects an S3-compatible endpoint."""
    config = config or TransferConfig()
    session_kwargs = {}
    if profile:
        session_kwargs["profile_name"] = profile
    session = boto3.session.Session(**session_kwargs)
    # Path-style addressing is what MinIO and most host:port endpoints expect
    boto_cfg = BotoConfig(
        s3={"addressing_style": "path" if host else "auto"},
        retries={"max_attempts": 3, "mode": "standard"},
        max_pool_connections=max(10, config.concurrency * 2),
    )
    endpoint_url = f"http://{host}" if host else None
    client_kwargs = {"region_name": region, "config": boto_cfg, "endpoint_url": endpoint_url}
    return session.client("s3", **{k: v for k, v in client_kwargs.items() if v is not None})


def _check_unchanged(item: UploadItem) -> None:
    try:
        size = os.stat(item.local_path).st_size
    except FileNotFoundError as e:
        raise FileChangedError(f"{item.local_path} disappeared before upload") from e
    if size != item.size_bytes:
        raise FileChangedError(
            f"{item.local_path} changed size since it was listed ({item.size_bytes}B -> {size}B)"
        )


def upload_one(
    s3,
    bucket: str,
    item: UploadItem,
    config: TransferConfig,
    progress: Optional[ProgressCallback] = None,
    request_customizer: Optional[RequestCustomizer] = None,
) -> None:
    """Upload one file, retrying transient failures. Blocking; runs in a worker thread."""
    boto_transfer = BotoTransferConfig(
        multipart_threshold=config.multipart_threshold,
        multipart_chunksize=config.multipart_chunksize,
    )
    # s3transfer may call back from several of its own threads
    lock = threading.Lock()
    high_water = [0]

    def attempt() -> None:
        _check_unchanged(item)
        seen = [0]

        def on_bytes(n: int) -> None:
            with lock:
                seen[0] += n
                new = seen[0] - high_water[0]
                if new <= 0:
                    return
                high_water[0] = seen[0]
            if progress is not None:
                progress(new)

        extra_args = request_customizer() if request_customizer else {}
        s3.upload_file(
            str(item.local_path),
            bucket,
            item.key,
            ExtraArgs=extra_args or None,
            Callback=on_bytes,
            Config=boto_transfer,
        )

    config.retrying()(attempt)


async def upload(
    s3,
    bucket: str,
    items: Iterable[UploadItem],
    config: TransferConfig,
    progress: Optional[ProgressCallback] = None,
    request_customizer: Optional[RequestCustomizer] = None,
) -> List[UploadResult]:
    """Upload every item with `config.concurrency` workers pulling lazily from items.

    Never raises for a single failed file; each failure is recorded on its
    UploadResult so callers can tell what made it.
    """
    items = iter(items)
    pull_lock = asyncio.Lock()
    results: List[UploadResult] = []

    async def next_item() -> Optional[UploadItem]:
        # one puller at a time; the iterator may be walking the filesystem
        async with pull_lock:
            return await asyncio.to_thread(next, items, None)

    async def worker() -> None:
        while True:
            item = await next_item()
            if item is None:
                return
            start = time.perf_counter()
            error: Optional[BaseException] = None
            try:
                # Offload blocking upload to a thread to enable asyncio concurrency
                await asyncio.to_thread(upload_one, s3, bucket, item, config, progress, request_customizer)
            except (TransferError, OSError, *RETRYABLE) as e:
                logger.error("Upload of %s to %s failed: %s", item.local_path, item.key, e)
                error = e
            else:
                logger.debug("Uploaded %s -> s3://%s/%s", item.local_path, bucket, item.key)
            results.append(
                UploadResult(
                    key=item.key,
                    local_path=item.local_path,
                    size_bytes=item.size_bytes,
                    duration_sec=time.perf_counter() - start,
                    error=error,
                )
            )

    await asyncio.gather(*(worker() for _ in range(max(1, int(config.concurrency)))))
    return results


def list_prefix(s3, bucket: str, prefix: str = "") -> Iterator[str]:
    """Yield every key under the prefix."""
    paginator = s3.get_paginator("list_objects_v2")
    kwargs = {"Bucket": bucket}
    if prefix:
        kwargs["Prefix"] = prefix
    for page in paginator.paginate(**kwargs):
        for obj in page.get("Contents", []) or []:
            yield obj["Key"]


def delete_batch(s3, bucket: str, keys: List[str], config: TransferConfig) -> None:
    def attempt():
        return s3.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
        )

    resp = config.retrying()(attempt)
    errors = resp.get("Errors") or []
    if errors:
        first = errors[0]
        raise TransferError(
            f"{len(errors)} of {len(keys)} deletes failed in s3://{bucket}; "
            f"first: {first.get('Key')}: {first.get('Code')} {first.get('Message', '')}".rstrip()
        )


async def list_and_delete_all(s3, bucket: str, prefix: str, config: Optional[TransferConfig] = None) -> int:
    """Delete every object whose key starts with prefix. Returns the number deleted."""
    config = config or TransferConfig()

    def run() -> int:
        deleted = 0
        batch: List[str] = []
        try:
            for key in list_prefix(s3, bucket, prefix):
                batch.append(key)
                if len(batch) >= cfg.DELETE_BATCH_SIZE:
                    delete_batch(s3, bucket, batch, config)
                    deleted += len(batch)
                    batch = []
            if batch:
                delete_batch(s3, bucket, batch, config)
                deleted += len(batch)
        except RETRYABLE as e:
            raise TransferError(f"deleting s3://{bucket}/{prefix} failed after {deleted} objects: {e}") from e
        return deleted

    return await asyncio.to_thread(run)
