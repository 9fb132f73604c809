"""Pytest configuration and shared fixtures."""

import threading

import pytest
from botocore.exceptions import ClientError

from s3tool.transfer import TransferConfig


class FakePaginator:
    def __init__(self, s3, page_size=2):
        self.s3 = s3
        self.page_size = page_size

    def paginate(self, Bucket, Prefix=""):
        keys = sorted(k for (b, k) in self.s3.objects if b == Bucket and k.startswith(Prefix))
        for i in range(0, max(len(keys), 1), self.page_size):
            chunk = keys[i:i + self.page_size]
            yield {"Contents": [{"Key": k, "Size": len(self.s3.objects[(Bucket, k)])} for k in chunk]}


class FakeS3:
    """In-memory stand-in for the handful of boto3 S3 client calls we make."""

    def __init__(self, chunk_size=4):
        self.objects = {}
        self.extra_args = {}
        self.chunk_size = chunk_size
        self.failures = {}  # key -> number of attempts that should fail
        self.delete_failures = 0
        self.calls = []
        self._lock = threading.Lock()

    def put(self, bucket, key, body=b""):
        self.objects[(bucket, key)] = body

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None, Callback=None, Config=None):
        with self._lock:
            self.calls.append(("upload_file", Key))
        with open(Filename, "rb") as f:
            data = f.read()
        for i in range(0, len(data), self.chunk_size):
            if Callback:
                Callback(len(data[i:i + self.chunk_size]))
        with self._lock:
            remaining = self.failures.get(Key, 0)
            if remaining:
                self.failures[Key] = remaining - 1
                raise ClientError({"Error": {"Code": "SlowDown", "Message": "Reduce your request rate"}}, "PutObject")
            self.objects[(Bucket, Key)] = data
            self.extra_args[Key] = ExtraArgs

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def delete_objects(self, Bucket, Delete):
        self.calls.append(("delete_objects", len(Delete["Objects"])))
        if self.delete_failures:
            self.delete_failures -= 1
            raise ClientError({"Error": {"Code": "InternalError", "Message": "We encountered an internal error"}}, "DeleteObjects")
        for obj in Delete["Objects"]:
            self.objects.pop((Bucket, obj["Key"]), None)
        return {}


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def localdir(tmp_path):
    """./localdir with a.txt (10 bytes) and sub/b.txt (20 bytes)."""
    root = tmp_path / "localdir"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"a" * 10)
    (root / "sub" / "b.txt").write_bytes(b"b" * 20)
    return root


@pytest.fixture
def delays():
    """Retry waits, recorded instead of slept."""
    return []


@pytest.fixture
def fast_config(delays):
    return TransferConfig(sleep=delays.append)
