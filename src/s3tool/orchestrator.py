import asyncio
import logging
from typing import Callable, Dict, List, Optional

from . import config as cfg
from .files import PathLike, files_recursive, total_bytes
from .location import Local, Location, Remote
from .progress import ProgressChannel, ProgressSink
from .transfer import (
    RequestCustomizer,
    TransferConfig,
    TransferError,
    UploadResult,
    list_and_delete_all,
    make_s3_client,
    upload,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Optional[str]], object]


class UnsupportedOperation(Exception):
    pass


def sse_customizer(sse: bool) -> RequestCustomizer:
    def extra_args() -> Dict[str, str]:
        if sse:
            return {"ServerSideEncryption": cfg.SSE_ALGORITHM}
        return {}

    return extra_args


def plan_copy(src: Location, dest: Location):
    """Return (local source, remote destination) or raise for any other direction."""
    if isinstance(src, Local) and isinstance(dest, Remote):
        return src, dest
    raise UnsupportedOperation(f"copying from {src} to {dest} is not supported; only local -> S3 uploads are")


def plan_remove(prefix: Location) -> Remote:
    if isinstance(prefix, Remote):
        return prefix
    raise UnsupportedOperation(f"`prefix` must be an S3 location, got local path {prefix}")


def summarize(results: List[UploadResult]) -> str:
    failed = [r for r in results if not r.ok]
    ok_bytes = sum(r.size_bytes for r in results if r.ok)
    lines = [f"{len(results) - len(failed)} of {len(results)} files uploaded ({ok_bytes}B), {len(failed)} failed"]
    for r in failed:
        lines.append(f"  {r.local_path} -> {r.key}: {r.error}")
    return "\n".join(lines)


async def upload_tree(
    s3,
    bucket: str,
    root: PathLike,
    base_key: str,
    config: TransferConfig,
    sink: ProgressSink,
    request_customizer: RequestCustomizer,
) -> List[UploadResult]:
    """Upload everything under root to bucket/base_key, reporting bytes to sink.

    Raises TransferError listing every failed file if any upload failed after
    its retries; the error's `results` hold the outcome of every file.
    """
    sink.set_total(await asyncio.to_thread(total_bytes, root))
    async with ProgressChannel(sink) as channel:
        results = await upload(
            s3,
            bucket,
            files_recursive(root, base_key),
            config,
            progress=channel.report,
            request_customizer=request_customizer,
        )
    if any(not r.ok for r in results):
        raise TransferError(summarize(results), results)
    return results


async def delete_prefix(s3, bucket: str, key_prefix: str, config: Optional[TransferConfig] = None) -> int:
    return await list_and_delete_all(s3, bucket, key_prefix, config)


def default_client_factory(profile: str, region: str, config: TransferConfig) -> ClientFactory:
    def build(host: Optional[str]):
        return make_s3_client(profile=profile, region=region, host=host, config=config)

    return build


def run_copy(
    src: Location,
    dest: Location,
    client_factory: ClientFactory,
    config: TransferConfig,
    sink: ProgressSink,
    sse: bool = False,
) -> List[UploadResult]:
    local, remote = plan_copy(src, dest)
    s3 = client_factory(remote.host)
    logger.info("Uploading %s to %s", local.path, remote.url)
    try:
        return asyncio.run(
            upload_tree(s3, remote.bucket, local.path, remote.key, config, sink, sse_customizer(sse))
        )
    finally:
        sink.finish()


def run_remove(prefix: Location, client_factory: ClientFactory, config: TransferConfig) -> int:
    remote = plan_remove(prefix)
    s3 = client_factory(remote.host)
    logger.info("Deleting everything under %s", remote.url)
    return asyncio.run(delete_prefix(s3, remote.bucket, remote.key, config))
