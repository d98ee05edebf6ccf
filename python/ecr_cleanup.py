#!/usr/bin/env python3
"""
Clean up old images in AWS ECR repositories.

For every repository (or the one given with --repo) the script:
  - deletes all untagged images
  - filters tagged images with --tag-regexp; --post-filter-action decides
    whether matching images are deletion candidates (delete) or exempt (save)
  - keeps the --keep most recently pushed candidates and deletes the rest

Deletion is sent in batches of at most 100 digests. A failing batch stops
the run; images deleted by earlier batches stay deleted.

Usage:
    # See what would be deleted in every repository
    python ecr_cleanup.py --dry-run

    # Keep the 20 newest images of one repository
    python ecr_cleanup.py --repo my-service --keep 20

    # Only prune feature-branch builds, keep the newest 5 of them
    python ecr_cleanup.py --tag-regexp '^feature-' --keep 5

    # Never delete release tags, keep the newest 50 of the rest
    python ecr_cleanup.py --tag-regexp '^v[0-9]+\\.' --post-filter-action save --keep 50
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

from utils.batch_deletion import DeletionResult, delete_plan
from utils.config_manager import ConfigManager, load_config
from utils.error_utils import ActionableError, create_fetch_error
from utils.logging_utils import get_logger, log_exception, setup_logging
from utils.registry_client import EcrRegistryClient, RegistryClient
from utils.retention import Image, RetentionPolicy, build_deletion_plan

logger = get_logger(__name__)


class RegistryCleaner:
    """Applies a RetentionPolicy to registry repositories, one at a time"""

    def __init__(self, client: RegistryClient, policy: RetentionPolicy, dry_run: bool = False,
                 region: Optional[str] = None):
        self.client = client
        self.policy = policy
        self.dry_run = dry_run
        self.region = region

    def list_repositories(self) -> List[str]:
        try:
            return self.client.list_repositories()
        except Exception as e:
            raise create_fetch_error("list repositories", e, region=self.region) from e

    def fetch_all_images(self, repository: str) -> List[Image]:
        """Fetch every image of a repository, following pagination tokens until exhausted"""
        images: List[Image] = []
        seen: Dict[str, Image] = {}
        next_token = None
        pages = 0
        while True:
            try:
                page, next_token = self.client.list_images(repository, next_token)
            except Exception as e:
                raise create_fetch_error("retrieve images", e, repository=repository, region=self.region) from e
            pages += 1
            for image in page:
                if image.digest in seen:
                    logger.warning(f"Ignoring repeated digest {image.digest} in {repository}")
                    continue
                seen[image.digest] = image
                images.append(image)
            if not next_token:
                break
        logger.debug(f"Fetched {len(images)} images from {repository} in {pages} page(s)")
        return images

    def clean_repository(self, repository: str) -> DeletionResult:
        images = self.fetch_all_images(repository)
        logger.info(f"Number of images in {repository}: {len(images)}")

        plan = build_deletion_plan(repository, images, self.policy)
        logger.info(
            f"{repository}: {len(plan.untagged)} untagged, {len(plan.expired)} tagged beyond keep={self.policy.keep}"
        )
        return delete_plan(self.client, plan, dry_run=self.dry_run, region=self.region)

    def run(self, repository: Optional[str] = None) -> List[DeletionResult]:
        """Process the given repository, or all repositories when none is given.

        Raises:
            FetchError: If repositories or images cannot be listed
            DeleteError: If a batch delete call fails
        """
        repositories = [repository] if repository else self.list_repositories()
        logger.info(f"Repositories to process: {repositories}")

        results = []
        for name in repositories:
            results.append(self.clean_repository(name))
        self.log_summary(results)
        return results

    def log_summary(self, results: List[DeletionResult]) -> None:
        mode = "DRY RUN: " if self.dry_run else ""
        logger.info(f"{mode}Cleanup Summary:")
        logger.info(f"   Repositories processed: {len(results)}")
        logger.info(f"   Images selected: {sum(r.planned for r in results)}")
        if self.dry_run:
            return
        logger.info(f"   Successfully deleted: {sum(r.deleted for r in results)}")
        failed = sum(r.failed for r in results)
        if failed:
            logger.info(f"   Failed deletions: {failed}")


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Delete old images from AWS ECR repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run over all repositories
  python ecr_cleanup.py --dry-run

  # Keep the 20 newest images of one repository
  python ecr_cleanup.py --repo my-service --keep 20

  # Exempt release tags from deletion
  python ecr_cleanup.py --tag-regexp '^v[0-9]+' --post-filter-action save
        """,
    )

    parser.add_argument("--keep", type=int, help="amount of images / repo you want to keep (default: 100)")

    parser.add_argument("--aws-region", help="AWS region (default: from config, AWS_REGION or eu-central-1)")

    parser.add_argument("--repo", help="repository you want to process, empty if you want all")

    parser.add_argument(
        "--dry-run", action="store_true", default=None, help="run the code without actual deleting"
    )

    parser.add_argument("--tag-regexp", help="regexp for filtering images")

    parser.add_argument(
        "--post-filter-action",
        help="images with regexp tags can be deleted or saved: delete or save (default: delete)",
    )

    parser.add_argument("--config", help="Path to config YAML file (default: CONFIG_FILE env var or config.yaml)")

    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    return parser.parse_args(argv)


def cli_overrides(args) -> Dict[str, Any]:
    """Config values given on the command line, validated in place of the file values"""
    return {
        "registry": {"repository": args.repo},
        "retention": {
            "keep": args.keep,
            "tag_regexp": args.tag_regexp,
            "post_filter_action": args.post_filter_action,
        },
    }


def build_policy(args, config: ConfigManager) -> RetentionPolicy:
    """Build the retention policy from flags, falling back to config values

    Raises:
        ConfigurationError: If keep, tag regexp or post-filter action is invalid
    """
    return RetentionPolicy(
        keep=args.keep if args.keep is not None else config.get_keep(),
        tag_regexp=args.tag_regexp if args.tag_regexp is not None else config.get_tag_regexp(),
        post_filter_action=(
            args.post_filter_action if args.post_filter_action is not None else config.get_post_filter_action()
        ),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    args = parse_arguments(argv)
    try:
        setup_logging(args.log_level)
    except ValueError as e:
        logger.error(str(e))
        return 1

    try:
        config = load_config(args.config, overrides=cli_overrides(args))
        policy = build_policy(args, config)
        region = args.aws_region or config.get_aws_region()
        repository = args.repo if args.repo is not None else config.get_repository()
        dry_run = args.dry_run if args.dry_run is not None else config.is_dry_run_by_default()

        logger.info(
            f"Retention policy: keep={policy.keep} tag_regexp='{policy.tag_regexp}' "
            f"post_filter_action={policy.post_filter_action.value} region={region}"
        )

        client = EcrRegistryClient(region, config.get_botocore_config(region))
        RegistryCleaner(client, policy, dry_run=dry_run, region=region).run(repository or None)
    except ActionableError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        log_exception(logger, "Unexpected error during cleanup", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
