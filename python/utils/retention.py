#!/usr/bin/env python3
"""
Retention selection for registry images.

Decides which images of one repository fall outside the retention window:

1. Untagged images are always deleted.
2. Tagged images are filtered with the tag regexp. The post-filter action
   picks the candidate list: ``delete`` keeps the matching images as
   candidates, ``save`` exempts them and uses the non-matching ones.
3. Candidates are sorted oldest first and everything but the ``keep``
   most recently pushed images is selected.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from utils.error_utils import create_config_error


@dataclass(frozen=True)
class Image:
    """Read-only snapshot of one image digest in a repository."""

    digest: str
    tags: Tuple[str, ...]
    pushed_at: datetime

    @property
    def is_tagged(self) -> bool:
        return len(self.tags) > 0

    @classmethod
    def from_ecr(cls, detail: Dict[str, Any]) -> "Image":
        """Build an Image from an ECR ``imageDetails`` entry."""
        return cls(
            digest=detail["imageDigest"],
            tags=tuple(detail.get("imageTags") or ()),
            pushed_at=detail["imagePushedAt"],
        )

    def __str__(self) -> str:
        tags = ",".join(self.tags) if self.tags else "<untagged>"
        return f"{self.digest} [{tags}] pushed {self.pushed_at.isoformat()}"


class PostFilterAction(Enum):
    DELETE = "delete"
    SAVE = "save"

    @classmethod
    def parse(cls, value: str) -> "PostFilterAction":
        normalized = (value or "").strip().lower()
        for action in cls:
            if action.value == normalized:
                return action
        raise create_config_error(
            "post-filter-action", value, "only delete and save are supported"
        )


@dataclass
class RetentionPolicy:
    """Keep-count, tag filter and post-filter action for a cleanup run.

    The tag regexp is compiled on construction so an invalid pattern is
    reported before any repository is processed.
    """

    keep: int = 100
    tag_regexp: str = ""
    post_filter_action: PostFilterAction = PostFilterAction.DELETE
    pattern: Optional[re.Pattern] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.keep, bool) or not isinstance(self.keep, int) or self.keep < 0:
            raise create_config_error("keep", self.keep, "must be an integer >= 0")
        if isinstance(self.post_filter_action, str):
            self.post_filter_action = PostFilterAction.parse(self.post_filter_action)
        self.tag_regexp = self.tag_regexp or ""
        if self.tag_regexp:
            try:
                self.pattern = re.compile(self.tag_regexp)
            except re.error as e:
                raise create_config_error("tag-regexp", self.tag_regexp, f"incorrect regexp: {e}") from e


@dataclass
class DeletionPlan:
    """Images selected for removal from one repository in the current run."""

    repository: str
    untagged: List[Image] = field(default_factory=list)
    expired: List[Image] = field(default_factory=list)

    @property
    def images(self) -> List[Image]:
        # untagged first, then the selected tagged images oldest first
        return self.untagged + self.expired

    @property
    def digests(self) -> List[str]:
        return [image.digest for image in self.images]

    def __len__(self) -> int:
        return len(self.untagged) + len(self.expired)


def partition_by_tag(images: Sequence[Image]) -> Tuple[List[Image], List[Image]]:
    """Split images into (untagged, tagged), preserving input order."""
    untagged: List[Image] = []
    tagged: List[Image] = []
    for image in images:
        if image.is_tagged:
            tagged.append(image)
        else:
            untagged.append(image)
    return untagged, tagged


def filter_by_tag_pattern(images: Sequence[Image], pattern) -> Tuple[List[Image], List[Image]]:
    """Split tagged images into (matched, unmatched) by the tag pattern.

    An image matches when any of its tags matches (``re.search`` semantics).
    An empty pattern disables filtering: every image is matched.

    Args:
        images: Tagged images in repository order
        pattern: Compiled pattern, pattern string, or empty string / None

    Returns:
        Tuple of (matched, unmatched), both in input order
    """
    if not pattern:
        return list(images), []

    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern

    matched: List[Image] = []
    matched_digests: Set[str] = set()
    for image in images:
        if any(compiled.search(tag) for tag in image.tags):
            matched.append(image)
            matched_digests.add(image.digest)

    unmatched = [image for image in images if image.digest not in matched_digests]
    return matched, unmatched


def select_candidates(images: Sequence[Image], policy: RetentionPolicy) -> List[Image]:
    """Return the tagged images the keep-count is applied to."""
    matched, unmatched = filter_by_tag_pattern(images, policy.pattern)
    if policy.post_filter_action == PostFilterAction.DELETE:
        return matched
    return unmatched


def select_for_removal(candidates: Sequence[Image], keep: int) -> List[Image]:
    """Select the oldest candidates beyond the ``keep`` most recent ones.

    Sorting is stable, so images pushed at the same time keep their
    repository order.
    """
    if len(candidates) < keep:
        return []
    by_time = sorted(candidates, key=lambda image: image.pushed_at)
    return by_time[: len(by_time) - keep]


def build_deletion_plan(repository: str, images: Sequence[Image], policy: RetentionPolicy) -> DeletionPlan:
    untagged, tagged = partition_by_tag(images)
    candidates = select_candidates(tagged, policy)
    expired = select_for_removal(candidates, policy.keep)
    return DeletionPlan(repository=repository, untagged=untagged, expired=expired)
