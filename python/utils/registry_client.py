"""
Registry client for ECR operations.

``RegistryClient`` is the interface the cleaner depends on. ``EcrRegistryClient``
implements it with boto3; tests substitute an in-memory implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.config import Config

from utils.logging_utils import get_logger
from utils.retention import Image

logger = get_logger(__name__)

# BatchDeleteImage accepts at most 100 image ids per request
MAX_BATCH_DELETE_SIZE = 100


class RegistryClient(ABC):
    """Operations the cleaner needs from a registry"""

    @abstractmethod
    def list_repositories(self) -> List[str]:
        """Return the names of all repositories in the registry"""

    @abstractmethod
    def list_images(self, repository: str, next_token: Optional[str] = None) -> Tuple[List[Image], Optional[str]]:
        """Return one page of images and the token of the next page (None on the last page)"""

    @abstractmethod
    def delete_images(self, repository: str, digests: Sequence[str]) -> List[Dict[str, Any]]:
        """Delete up to MAX_BATCH_DELETE_SIZE images by digest.

        Returns:
            Per-image failures reported by the registry (empty when all were deleted)
        """


class EcrRegistryClient(RegistryClient):
    """RegistryClient backed by the AWS ECR API"""

    def __init__(self, region: str, botocore_config: Optional[Config] = None, client=None):
        """Initialize the ECR client

        Args:
            region: AWS region of the registry
            botocore_config: Retry and timeout settings for the boto3 client
            client: Pre-built boto3 ECR client (skips client creation)
        """
        self.region = region
        self.client = client or boto3.client("ecr", region_name=region, config=botocore_config)

    def list_repositories(self) -> List[str]:
        paginator = self.client.get_paginator("describe_repositories")
        names: List[str] = []
        for page in paginator.paginate():
            names.extend(repo["repositoryName"] for repo in page.get("repositories", []))
        return names

    def list_images(self, repository: str, next_token: Optional[str] = None) -> Tuple[List[Image], Optional[str]]:
        params: Dict[str, Any] = {"repositoryName": repository}
        if next_token:
            params["nextToken"] = next_token
        response = self.client.describe_images(**params)
        images = [Image.from_ecr(detail) for detail in response.get("imageDetails", [])]
        return images, response.get("nextToken")

    def delete_images(self, repository: str, digests: Sequence[str]) -> List[Dict[str, Any]]:
        if len(digests) > MAX_BATCH_DELETE_SIZE:
            raise ValueError(
                f"Cannot delete {len(digests)} images in one call (limit {MAX_BATCH_DELETE_SIZE})"
            )
        if not digests:
            return []
        response = self.client.batch_delete_image(
            repositoryName=repository,
            imageIds=[{"imageDigest": digest} for digest in digests],
        )
        deleted = response.get("imageIds", [])
        logger.debug(f"batch_delete_image removed {len(deleted)} image ids from {repository}")
        return response.get("failures", [])
