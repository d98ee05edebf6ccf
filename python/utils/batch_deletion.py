"""Chunked deletion of a repository's DeletionPlan."""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from utils.error_utils import create_delete_error
from utils.logging_utils import get_logger
from utils.registry_client import MAX_BATCH_DELETE_SIZE, RegistryClient
from utils.retention import DeletionPlan

logger = get_logger(__name__)


@dataclass
class DeletionResult:
    """Outcome of processing one repository."""

    repository: str
    planned: int
    deleted: int = 0
    failed: int = 0
    batches: int = 0
    dry_run: bool = False


def chunk_boundaries(total: int, size: int = MAX_BATCH_DELETE_SIZE) -> List[Tuple[int, int]]:
    """Return [start, end) index pairs splitting ``total`` items into chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    count = -(-total // size)
    return [(i * size, min((i + 1) * size, total)) for i in range(count)]


def delete_plan(
    client: RegistryClient,
    plan: DeletionPlan,
    dry_run: bool = False,
    batch_size: int = MAX_BATCH_DELETE_SIZE,
    region: Optional[str] = None,
) -> DeletionResult:
    """Delete every image of the plan, one batch call at a time.

    Batches are issued in plan order. The first failing call aborts the
    repository with a DeleteError; batches already issued are not rolled back.

    Args:
        client: Registry client used for the delete calls
        plan: Images selected for removal
        dry_run: Log the plan instead of deleting
        batch_size: Images per delete call, capped at MAX_BATCH_DELETE_SIZE
        region: Region name used in error suggestions

    Returns:
        DeletionResult for the repository

    Raises:
        DeleteError: If a batch delete call fails
    """
    repository = plan.repository
    images = plan.images
    result = DeletionResult(repository=repository, planned=len(images), dry_run=dry_run)

    logger.info(f"number of images to delete in {repository}: {len(images)}")

    if dry_run:
        logger.info(f"DRY RUN: {len(images)} images would be deleted from {repository}")
        for image in images:
            logger.info(f"  would delete {image}")
        return result

    if not images:
        logger.info(f"nothing to do so skip {repository}")
        return result

    digests = plan.digests
    boundaries = chunk_boundaries(len(digests), min(batch_size, MAX_BATCH_DELETE_SIZE))
    for index, (start, end) in enumerate(boundaries):
        batch = digests[start:end]
        try:
            failures = client.delete_images(repository, batch)
        except Exception as e:
            raise create_delete_error(repository, index, len(boundaries), result.deleted, e, region) from e

        result.batches += 1
        for failure in failures:
            image_id = failure.get("imageId", {})
            logger.warning(
                f"could not delete {image_id.get('imageDigest', image_id)} in {repository}: "
                f"{failure.get('failureCode')} {failure.get('failureReason', '')}".rstrip()
            )
        result.failed += len(failures)
        result.deleted += len(batch) - len(failures)
        logger.debug(f"batch {index + 1}/{len(boundaries)} for {repository}: {len(batch)} images")

    logger.info(f"deleted {result.deleted} images in repo {repository}")
    if result.failed:
        logger.warning(f"{result.failed} images in repo {repository} were reported as not deleted")
    return result
