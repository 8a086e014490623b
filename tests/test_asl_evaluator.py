"""Tests for the declarative condition evaluator."""

import pytest

from cache.source_cache import SourceCache
from conftest import entry
from models.base_models import AslCondition, AslTree, FindingStatus
from rules.asl_evaluator import (
    AslEvaluationError, AslEvaluator, _MISSING, apply_transform, compare, resolve_property
)


def _tree(*conditions, logical="AND"):
    return AslTree(conditions=[AslCondition(**c) for c in conditions], logical=logical)


def test_resolve_property_follows_dotted_paths():
    item = {"settings": {"ipConfiguration": {"ipv4Enabled": False}}}
    assert resolve_property(item, "settings.ipConfiguration.ipv4Enabled") is False
    assert resolve_property(item, "settings.backupConfiguration.enabled") is _MISSING
    assert resolve_property("not a mapping", "name") is _MISSING


@pytest.mark.parametrize("value, transform, expected", [
    (True, "STRING", "true"),
    (None, "STRING", ""),
    ("42", "NUMBER", 42.0),
    ("Yes", "BOOLEAN", True),
    ("MiXeD", "LOWERCASE", "mixed"),
    ("MiXeD", "UPPERCASE", "MIXED"),
    ([1, 2, 3], "COUNT", 3),
    ("unchanged", None, "unchanged"),
])
def test_apply_transform(value, transform, expected):
    assert apply_transform(value, transform) == expected


def test_apply_transform_errors():
    with pytest.raises(AslEvaluationError):
        apply_transform("abc", "NUMBER")
    with pytest.raises(AslEvaluationError):
        apply_transform(7, "COUNT")


def test_compare_operators():
    assert compare(5, "GT", 3)
    assert compare(3, "LE", 3)
    assert compare(["a", "b"], "CONTAINS", "a")
    assert compare("abc", "NOTCONTAINS", "z")
    assert compare(_MISSING, "ISEMPTY", None)
    assert compare([], "ISEMPTY", None)
    assert compare("x", "ISNOTEMPTY", None)
    assert compare(True, "ISTRUE", None)
    assert not compare("true", "ISTRUE", None)
    assert not compare(_MISSING, "EQ", None)
    with pytest.raises(AslEvaluationError):
        compare("a", "GT", 1)


def test_evaluate_items_per_region():
    cache = SourceCache({"ec2": {"describeVolumes": {
        "us-east-1": entry([
            {"id": "vol-1", "Encrypted": True},
            {"id": "vol-2", "Encrypted": False},
        ]),
        "eu-west-1": entry(err={"code": "UnauthorizedOperation"}),
        "sa-east-1": entry([{"id": "vol-3", "Encrypted": True}]),
    }}})
    tree = _tree({"service": "ec2", "api": "describeVolumes", "property": "Encrypted", "op": "ISTRUE"})
    region_set = {"ec2": ("us-east-1", "eu-west-1", "ap-south-1")}

    findings = AslEvaluator(cache, region_set).evaluate(tree)

    assert [(f.region, f.resource, f.status) for f in findings] == [
        ("us-east-1", "vol-1", FindingStatus.OK),
        ("us-east-1", "vol-2", FindingStatus.FAIL),
        ("eu-west-1", None, FindingStatus.UNKNOWN),
    ]
    assert findings[1].extra == {"failed_conditions": ["Encrypted ISTRUE"]}
    assert findings[2].message == "Unable to query ec2:describeVolumes: UnauthorizedOperation"


def test_logical_or_and_subkey_api():
    cache = SourceCache({"instances": {"sql": {"list": {"global": entry([
        {"name": "db-1", "settings": {"backupConfiguration": {"enabled": True}}, "tier": "db-f1-micro"},
        {"name": "db-2", "settings": {}, "tier": "db-n1-standard-1"},
    ])}}}})
    tree = _tree(
        {"service": "instances", "api": "sql:list",
         "property": "settings.backupConfiguration.enabled", "op": "ISTRUE"},
        {"service": "instances", "api": "sql:list", "property": "tier",
         "transform": "UPPERCASE", "op": "EQ", "value": "DB-F1-MICRO"},
        logical="OR",
    )
    region_set = {"instances.sql": ("global",)}

    findings = AslEvaluator(cache, region_set).evaluate(tree)

    assert [(f.resource, f.status) for f in findings] == [
        ("db-1", FindingStatus.OK),
        ("db-2", FindingStatus.FAIL),
    ]


def test_unmapped_service_falls_back_to_cached_regions():
    cache = SourceCache({"IAM": {"getAccountPasswordPolicy": {
        "us-east-1": entry({"MinimumPasswordLength": "8"}),
    }}})
    tree = _tree({"service": "iam", "api": "getAccountPasswordPolicy",
                  "property": "MinimumPasswordLength", "transform": "NUMBER", "op": "GE", "value": 14})

    findings = AslEvaluator(cache).evaluate(tree)

    assert [(f.region, f.status) for f in findings] == [("us-east-1", FindingStatus.FAIL)]
    assert findings[0].message == "Conditions not met: MinimumPasswordLength GE 14"


def test_transform_errors_are_unknown():
    cache = SourceCache({"rds": {"describeDBInstances": {"us-east-1": entry([
        {"arn": "arn:aws:rds:us-east-1:1:db:a", "BackupRetentionPeriod": "n/a"},
    ])}}})
    tree = _tree({"service": "rds", "api": "describeDBInstances", "property": "BackupRetentionPeriod",
                  "transform": "NUMBER", "op": "GT", "value": 7})

    findings = AslEvaluator(cache, {"rds": ("us-east-1",)}).evaluate(tree)

    assert len(findings) == 1
    assert findings[0].status == FindingStatus.UNKNOWN
    assert findings[0].resource == "arn:aws:rds:us-east-1:1:db:a"
    assert findings[0].message.startswith("Unable to evaluate conditions:")


def test_service_not_in_cache_yields_nothing():
    tree = _tree({"service": "kms", "api": "listKeys", "property": "KeyId", "op": "ISNOTEMPTY"})
    assert AslEvaluator(SourceCache({})).evaluate(tree) == []
