import json
from unittest.mock import AsyncMock

import pytest

from cosmic_spec.models.llm_responses import OptimizationItem
from cosmic_spec.models.spec_models import QualityReport
from cosmic_spec.services import optimization_service
from cosmic_spec.services.llm import LLMError
from cosmic_spec.services.optimization_service import OptimizationService
from cosmic_spec.services.optimization_service import apply_patches

CONTENT = "# 1 概述\n\n本系统TODO。\n\n## 1.1 背景\n\n重复句。重复句。\n"


def _patches(*items):
    return json.dumps({"optimizations": [dict(zip(("issue", "original", "optimized"), item)) for item in items]})


@pytest.mark.asyncio
async def test_no_issues_means_no_call(fake_llm):
    result = await OptimizationService().optimize(CONTENT, QualityReport(issues=[]), None, fake_llm)
    assert result == CONTENT
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_unique_patch_is_applied(make_fake_llm):
    fake = make_fake_llm(optimization=_patches(("占位符", "本系统TODO。", "本系统用于订单管理。")))
    result = await OptimizationService().optimize(CONTENT, QualityReport(issues=["发现1个占位符: TODO"]), None, fake)
    assert "本系统用于订单管理。" in result
    assert "TODO" not in result


@pytest.mark.asyncio
async def test_ambiguous_missing_and_empty_patches_are_skipped(make_fake_llm):
    fake = make_fake_llm(
        optimization=_patches(
            ("重复", "重复句。", "唯一句。"),
            ("不存在", "没有这句话", "x"),
            ("空", "", "x"),
            ("占位符", "本系统TODO。", ""),
        )
    )
    result = await OptimizationService().optimize(CONTENT, QualityReport(issues=["issue"]), None, fake)
    assert result == CONTENT


@pytest.mark.asyncio
async def test_patch_without_optimized_text_never_deletes(make_fake_llm):
    fake = make_fake_llm(optimization=json.dumps({"optimizations": [{"issue": "占位符", "original": "本系统TODO。"}]}))
    result = await OptimizationService().optimize(CONTENT, QualityReport(issues=["发现1个占位符: TODO"]), None, fake)
    assert result == CONTENT
    assert "本系统TODO。" in result


@pytest.mark.asyncio
async def test_only_first_issues_are_sent(make_fake_llm, monkeypatch):
    monkeypatch.setattr(optimization_service.settings, "optimization_max_issues", 2)
    fake = make_fake_llm()
    report = QualityReport(issues=["问题一", "问题二", "问题三"])
    await OptimizationService().optimize(CONTENT, report, None, fake)
    call = fake.calls_of("optimization")[0]
    prompt = call["messages"][-1]["content"]
    assert "问题一" in prompt and "问题二" in prompt
    assert "问题三" not in prompt
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 3000


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [LLMError("down"), "not json", '{"unexpected": true}'])
async def test_failures_return_content_unchanged(make_fake_llm, response):
    fake = make_fake_llm(optimization=response)
    result = await OptimizationService().optimize(CONTENT, QualityReport(issues=["issue"]), None, fake)
    assert result == CONTENT


@pytest.mark.asyncio
async def test_unexpected_error_never_raises(monkeypatch, fake_llm):
    monkeypatch.setattr(
        optimization_service,
        "execute_llm_step_with_template",
        AsyncMock(side_effect=KeyError("boom")),
    )
    result = await OptimizationService().optimize(CONTENT, QualityReport(issues=["issue"]), None, fake_llm)
    assert result == CONTENT


def test_apply_patches_uses_current_content():
    patches = [
        OptimizationItem(original="甲", optimized="乙"),
        OptimizationItem(original="乙乙", optimized="丙"),
    ]
    content, applied = apply_patches("甲乙", patches)
    assert content == "丙"
    assert applied == 2
