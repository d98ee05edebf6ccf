"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-memory registry client.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from utils.registry_client import MAX_BATCH_DELETE_SIZE, RegistryClient  # noqa: E402
from utils.retention import Image  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_image(index, tags=(), prefix="sha256:"):
    """Image whose push time grows with index"""
    return Image(
        digest=f"{prefix}{index:064x}",
        tags=tuple(tags),
        pushed_at=BASE_TIME + timedelta(minutes=index),
    )


def make_images(count, start=0, tagged=True):
    return [make_image(i, [f"build-{i}"] if tagged else []) for i in range(start, start + count)]


class FakeRegistryClient(RegistryClient):
    """In-memory registry that records every call"""

    def __init__(self, repositories=None, page_size=1000, fail_on_batch=None, failures_per_batch=None):
        self.repositories = repositories or {}
        self.page_size = page_size
        self.fail_on_batch = fail_on_batch
        self.failures_per_batch = failures_per_batch or {}
        self.list_images_calls = []
        self.delete_calls = []

    def list_repositories(self):
        return list(self.repositories)

    def list_images(self, repository, next_token=None):
        self.list_images_calls.append((repository, next_token))
        if repository not in self.repositories:
            raise RuntimeError(f"RepositoryNotFoundException: {repository} not found")
        images = self.repositories[repository]
        start = int(next_token) if next_token else 0
        end = start + self.page_size
        token = str(end) if end < len(images) else None
        return images[start:end], token

    def delete_images(self, repository, digests):
        assert len(digests) <= MAX_BATCH_DELETE_SIZE
        batch_index = len(self.delete_calls)
        if self.fail_on_batch is not None and batch_index == self.fail_on_batch:
            raise RuntimeError("AccessDeniedException: not authorized to perform ecr:BatchDeleteImage")
        self.delete_calls.append((repository, list(digests)))
        failed = self.failures_per_batch.get(batch_index, [])
        return [
            {"imageId": {"imageDigest": digest}, "failureCode": "ImageNotFound", "failureReason": "gone"}
            for digest in failed
        ]

    @property
    def deleted_digests(self):
        return [digest for _, digests in self.delete_calls for digest in digests]


@pytest.fixture
def fake_client_factory():
    return FakeRegistryClient
