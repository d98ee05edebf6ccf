"""Unit tests for utils/batch_deletion.py"""

import math

import pytest

from conftest import FakeRegistryClient, make_images
from utils.batch_deletion import DeletionResult, chunk_boundaries, delete_plan
from utils.error_utils import DeleteError, ErrorCategory
from utils.retention import DeletionPlan


def plan_of(size, repository="repo"):
    return DeletionPlan(repository=repository, untagged=make_images(size, tagged=False))


class TestChunkBoundaries:
    """Tests for chunk_boundaries"""

    def test_empty(self):
        assert chunk_boundaries(0) == []

    def test_exact_multiple(self):
        assert chunk_boundaries(200) == [(0, 100), (100, 200)]

    def test_remainder(self):
        assert chunk_boundaries(250) == [(0, 100), (100, 200), (200, 250)]

    def test_custom_size(self):
        assert chunk_boundaries(5, 2) == [(0, 2), (2, 4), (4, 5)]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk_boundaries(5, 0)


class TestDeletePlan:
    """Tests for delete_plan"""

    @pytest.mark.parametrize("size", [1, 55, 99, 100, 101, 200, 250, 1001])
    def test_call_count_and_last_chunk_size(self, size):
        client = FakeRegistryClient()
        result = delete_plan(client, plan_of(size))

        assert len(client.delete_calls) == math.ceil(size / 100)
        expected_last = size % 100 or 100
        assert len(client.delete_calls[-1][1]) == expected_last
        assert result.deleted == size
        assert result.batches == len(client.delete_calls)

    def test_preserves_plan_order(self):
        client = FakeRegistryClient()
        plan = plan_of(230)
        delete_plan(client, plan)
        assert client.deleted_digests == plan.digests
        assert all(repo == "repo" for repo, _ in client.delete_calls)

    def test_empty_plan_makes_no_calls(self):
        client = FakeRegistryClient()
        result = delete_plan(client, DeletionPlan(repository="repo"))
        assert client.delete_calls == []
        assert result == DeletionResult(repository="repo", planned=0)

    def test_dry_run_makes_no_calls(self):
        client = FakeRegistryClient()
        result = delete_plan(client, plan_of(150), dry_run=True)
        assert client.delete_calls == []
        assert result.dry_run
        assert result.planned == 150
        assert result.deleted == 0

    def test_dry_run_reports_plan(self, caplog):
        plan = plan_of(3)
        with caplog.at_level("INFO"):
            delete_plan(FakeRegistryClient(), plan, dry_run=True)
        for digest in plan.digests:
            assert digest in caplog.text
        assert "3 images would be deleted" in caplog.text

    def test_failure_aborts_without_rollback(self):
        client = FakeRegistryClient(fail_on_batch=2)
        with pytest.raises(DeleteError) as exc_info:
            delete_plan(client, plan_of(450))

        # first two batches went through, nothing after the failure was sent
        assert len(client.delete_calls) == 2
        error = exc_info.value
        assert error.deleted_count == 200
        assert error.details["repository"] == "repo"
        assert error.category == ErrorCategory.PERMISSION
        assert "batch 3/5" in str(error)
        assert isinstance(error.__cause__, RuntimeError)

    def test_failure_on_first_batch(self):
        client = FakeRegistryClient(fail_on_batch=0)
        with pytest.raises(DeleteError) as exc_info:
            delete_plan(client, plan_of(10))
        assert exc_info.value.deleted_count == 0
        assert client.delete_calls == []

    def test_per_image_failures_are_counted(self, caplog):
        plan = plan_of(120)
        client = FakeRegistryClient(failures_per_batch={1: plan.digests[100:102]})
        result = delete_plan(client, plan)
        assert result.batches == 2
        assert result.failed == 2
        assert result.deleted == 118
        assert "ImageNotFound" in caplog.text

    def test_batch_size_is_capped(self):
        client = FakeRegistryClient()
        delete_plan(client, plan_of(150), batch_size=500)
        assert [len(d) for _, d in client.delete_calls] == [100, 50]

    def test_smaller_batch_size(self):
        client = FakeRegistryClient()
        delete_plan(client, plan_of(25), batch_size=10)
        assert [len(d) for _, d in client.delete_calls] == [10, 10, 5]
