"""Tests for region enumeration."""

import pytest

from config.regions import (
    AWS_CHINA_REGIONS, AWS_GOVCLOUD_REGIONS, AWS_REGIONS, GOOGLE_REGIONS,
    default_region, regions,
)


def test_aws_defaults(config):
    region_set = regions(config, "aws")
    assert region_set["iam"] == ("us-east-1",)
    assert region_set["ec2"] == AWS_REGIONS
    assert default_region(config) == "us-east-1"


def test_google_global_categories(config):
    region_set = regions(config, "google")
    assert region_set["projects"] == ("global",)
    assert region_set["instances.sql"] == ("global",)
    assert region_set["instances.compute"] == GOOGLE_REGIONS


def test_allow_list_narrows_regional_categories_only(make_config):
    config = make_config(regions=["eu-west-1", "us-west-2", "us-central1"])
    aws = regions(config, "aws")
    assert aws["ec2"] == ("us-west-2", "eu-west-1")
    assert aws["iam"] == ("us-east-1",)

    google = regions(config, "google")
    assert google["instances.compute"] == ("us-central1",)
    assert google["projects"] == ("global",)


def test_empty_allow_list_disables_regional_categories(make_config):
    region_set = regions(make_config(regions=[]), "aws")
    assert region_set["ec2"] == ()
    assert region_set["iam"] == ("us-east-1",)


def test_govcloud_and_china(make_config):
    govcloud = make_config(govcloud=True)
    assert default_region(govcloud) == "us-gov-west-1"
    assert regions(govcloud, "aws")["rds"] == AWS_GOVCLOUD_REGIONS

    china = make_config(china=True)
    assert default_region(china) == "cn-north-1"
    assert regions(china, "aws")["iam"] == ("cn-north-1",)
    assert regions(china, "aws")["rds"] == AWS_CHINA_REGIONS


def test_configured_default_region_wins(make_config):
    config = make_config(default_region="eu-central-1")
    assert regions(config, "aws")["iam"] == ("eu-central-1",)


def test_region_set_is_read_only(config):
    region_set = regions(config, "aws")
    with pytest.raises(TypeError):
        region_set["iam"] = ("eu-west-1",)


def test_unknown_provider(config):
    with pytest.raises(ValueError):
        regions(config, "azure")
