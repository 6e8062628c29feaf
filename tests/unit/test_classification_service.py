import pytest

from cosmic_spec.core.exceptions import PipelineError
from cosmic_spec.services.classification_service import DEFAULT_MODULE
from cosmic_spec.services.classification_service import DEFAULT_SUBSYSTEM
from cosmic_spec.services.classification_service import FALLBACK_MODULE
from cosmic_spec.services.classification_service import KeywordClassifier
from cosmic_spec.services.classification_service import SingleBucketClassifier
from cosmic_spec.services.classification_service import verify_partition


@pytest.mark.asyncio
async def test_single_bucket_keeps_input_order():
    names = ["新增用户", "查询订单", "删除用户"]
    classification = await SingleBucketClassifier().classify(names)
    assert classification == {DEFAULT_SUBSYSTEM: {DEFAULT_MODULE: names}}


@pytest.mark.asyncio
async def test_keyword_classifier_groups_by_business_object():
    names = ["新增用户", "查询订单", "删除用户", "导出订单", "审核"]
    classification = await KeywordClassifier().classify(names)
    modules = classification[DEFAULT_SUBSYSTEM]
    assert list(modules) == ["用户管理", "订单管理", FALLBACK_MODULE]
    assert modules["用户管理"] == ["新增用户", "删除用户"]
    assert modules["订单管理"] == ["查询订单", "导出订单"]
    assert modules[FALLBACK_MODULE] == ["审核"]


@pytest.mark.parametrize(
    "name,expected",
    [
        ("新增用户", "用户"),
        ("用户管理", "用户"),
        ("查询订单统计", "订单"),
        ("  修改密码 ", "密码"),
        ("管理", ""),
    ],
)
def test_business_object(name, expected):
    assert KeywordClassifier.business_object(name) == expected


@pytest.mark.asyncio
async def test_keyword_classifier_is_a_partition():
    names = ["新增用户", "修改用户", "删除用户", "查询日志", "配置"]
    classification = await KeywordClassifier().classify(names)
    verify_partition(classification, names)


def test_verify_partition_rejects_duplicates():
    with pytest.raises(PipelineError) as exc:
        verify_partition({"s": {"m1": ["a"], "m2": ["a", "b"]}}, ["a", "b"])
    assert "duplicates: ['a']" in str(exc.value)


def test_verify_partition_rejects_missing_and_unknown():
    with pytest.raises(PipelineError) as exc:
        verify_partition({"s": {"m": ["a", "x"]}}, ["a", "b"])
    assert "missing: ['b']" in str(exc.value)
    assert "unknown: ['x']" in str(exc.value)
