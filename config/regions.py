"""
Region enumeration per provider and resource category.

A category is either regional (evaluated in every enabled provider region)
or global-scoped (evaluated once, in the provider's global scope). Plugins
ask for the regions of a category instead of hardcoding them, so a region
allow-list in the configuration narrows every regional check at once.
"""
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from config.settings import ConfigManager


logger = logging.getLogger(__name__)

RegionSet = Mapping[str, Tuple[str, ...]]

GLOBAL = "global"
REGIONAL = "regional"

AWS_REGIONS = (
    "us-east-1", "us-east-2", "us-west-1", "us-west-2",
    "ca-central-1", "sa-east-1",
    "eu-north-1", "eu-west-1", "eu-west-2", "eu-west-3", "eu-central-1",
    "ap-south-1", "ap-northeast-1", "ap-northeast-2", "ap-northeast-3",
    "ap-southeast-1", "ap-southeast-2",
    "me-south-1", "af-south-1",
)
AWS_GOVCLOUD_REGIONS = ("us-gov-west-1", "us-gov-east-1")
AWS_CHINA_REGIONS = ("cn-north-1", "cn-northwest-1")

GOOGLE_REGIONS = (
    "us-east1", "us-east4", "us-central1", "us-west1", "us-west2",
    "northamerica-northeast1", "southamerica-east1",
    "europe-west1", "europe-west2", "europe-west3", "europe-west4", "europe-north1",
    "asia-east1", "asia-east2", "asia-northeast1", "asia-south1", "asia-southeast1",
    "australia-southeast1",
)

# IAM, S3 bucket listing and CloudFront are queried once from the default region.
AWS_CATEGORIES: Dict[str, str] = {
    "iam": GLOBAL,
    "s3": GLOBAL,
    "cloudfront": GLOBAL,
    "ec2": REGIONAL,
    "rds": REGIONAL,
    "lambda": REGIONAL,
    "kms": REGIONAL,
    "cloudtrail": REGIONAL,
    "cloudwatchlogs": REGIONAL,
}

GOOGLE_CATEGORIES: Dict[str, str] = {
    "projects": GLOBAL,
    "metrics": GLOBAL,
    "alertPolicies": GLOBAL,
    "backupRuns": GLOBAL,
    "instances.sql": GLOBAL,
    "instances.compute": REGIONAL,
    "subnetworks": REGIONAL,
    "disks": REGIONAL,
    "keyRings": REGIONAL,
}


def default_region(config: ConfigManager) -> str:
    """Region used for AWS calls that are not region-scoped."""
    configured = config.get("default_region")
    if configured:
        return configured
    if config.get("govcloud"):
        return AWS_GOVCLOUD_REGIONS[0]
    if config.get("china"):
        return AWS_CHINA_REGIONS[0]
    return "us-east-1"


def _provider_regions(config: ConfigManager, provider: str) -> Tuple[str, ...]:
    if provider == "google":
        return GOOGLE_REGIONS
    if config.get("govcloud"):
        return AWS_GOVCLOUD_REGIONS
    if config.get("china"):
        return AWS_CHINA_REGIONS
    return AWS_REGIONS


def regions(config: ConfigManager, provider: str) -> RegionSet:
    """
    Resolves the read-only RegionSet (category -> regions) for a provider.
    Regional categories are narrowed by the configured allow-list; global
    categories are never narrowed.
    """
    if provider == "aws":
        categories = AWS_CATEGORIES
        global_scope = (default_region(config),)
    elif provider == "google":
        categories = GOOGLE_CATEGORIES
        global_scope = (GLOBAL,)
    else:
        raise ValueError(f"Unknown provider '{provider}'")

    available = _provider_regions(config, provider)
    allow_list = config.get_region_allow_list()
    if allow_list is not None:
        allowed = set(allow_list)
        regional = tuple(r for r in available if r in allowed)
        ignored = sorted(allowed.difference(available))
        if ignored:
            logger.debug(f"Ignoring regions not available for {provider}: {ignored}")
    else:
        regional = available

    region_set = {
        category: (global_scope if scope == GLOBAL else regional)
        for category, scope in categories.items()
    }
    return MappingProxyType(region_set)
