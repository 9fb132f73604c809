"""Parsing of cp/rm endpoint strings into local paths or bucket/key pairs."""

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

_S3_URI = re.compile(r"s3://(?P<bucket>[^/]*)(?:/(?P<key>.*))?", re.DOTALL)
_ENDPOINT = re.compile(r"(?P<host>[^/:]+:[0-9]+)/(?P<bucket>[^/]*)(?:/(?P<key>.*))?", re.DOTALL)


@dataclass(frozen=True)
class Remote:
    host: Optional[str]
    bucket: str
    key: str = ""

    @property
    def url(self) -> str:
        if self.host:
            return f"{self.host}/{self.bucket}/{self.key}"
        return f"s3://{self.bucket}/{self.key}"

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class Local:
    path: str

    def __str__(self) -> str:
        return self.path


Location = Union[Remote, Local]


def parse_location(raw: str) -> Location:
    """Parse a location string. Never fails; unknown shapes are local paths.

    Recognised forms, first match wins:
      s3://bucket[/key]
      host:port/bucket[/key]
    """
    m = _S3_URI.fullmatch(raw)
    if m:
        return Remote(host=None, bucket=m.group("bucket"), key=m.group("key") or "")
    m = _ENDPOINT.fullmatch(raw)
    if m:
        return Remote(host=m.group("host"), bucket=m.group("bucket"), key=m.group("key") or "")
    return Local(path=raw)


def resolve_location(raw: str) -> Location:
    """Like parse_location, but an existing local path wins over host:port/bucket syntax."""
    loc = parse_location(raw)
    if isinstance(loc, Remote) and loc.host is not None and os.path.exists(raw):
        logger.warning("%r exists locally; treating it as a local path, not endpoint %s", raw, loc.host)
        return Local(path=raw)
    return loc
