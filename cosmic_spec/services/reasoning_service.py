from __future__ import annotations

import logging
import re

from pydantic import BaseModel
from pydantic import Field

from cosmic_spec.models.llm_responses import BusinessRulesResponse
from cosmic_spec.models.spec_models import AcceptanceCriterion
from cosmic_spec.models.spec_models import BusinessRule
from cosmic_spec.models.spec_models import DataItem
from cosmic_spec.models.spec_models import DataMovementRow
from cosmic_spec.models.spec_models import GenerationContext
from cosmic_spec.models.spec_models import InferredContent
from cosmic_spec.models.spec_models import InterfaceDefinition
from cosmic_spec.models.spec_models import InterfaceParam
from cosmic_spec.models.spec_models import ReasoningResult
from cosmic_spec.models.spec_models import RequirementDoc
from cosmic_spec.models.spec_models import UIButton
from cosmic_spec.models.spec_models import UIDisplayField
from cosmic_spec.models.spec_models import UIElements
from cosmic_spec.models.spec_models import UIInputField
from cosmic_spec.services.llm import JSONParsingError
from cosmic_spec.services.llm import LLMError
from cosmic_spec.services.llm import TextGenerator
from cosmic_spec.services.llm import execute_llm_step_with_template
from cosmic_spec.services.llm import generate_text_with_template

logger = logging.getLogger(__name__)

_ATTRIBUTE_SEPARATORS = re.compile(r"[,、，;；]")
_STOP_WORDS = {"查询", "新增", "修改", "删除", "管理", "设置", "配置"}
_RELATED_CONTEXT_WINDOW = 5
_RELATED_MAX_LINES = 100


class DataFlow(BaseModel):
    """Data movements of one functional process split by COSMIC movement type."""

    entry: list[DataMovementRow] = Field(default_factory=list)
    read: list[DataMovementRow] = Field(default_factory=list)
    write: list[DataMovementRow] = Field(default_factory=list)
    exit: list[DataMovementRow] = Field(default_factory=list)
    purpose: str = ""


def _movement_kind(movement_type: str) -> str:
    return movement_type.strip()[:1].upper()


def analyze_data_flow(function_name: str, rows: list[DataMovementRow]) -> DataFlow:
    flow = DataFlow()
    buckets = {"E": flow.entry, "R": flow.read, "W": flow.write, "X": flow.exit}
    for row in rows:
        bucket = buckets.get(_movement_kind(row.data_movement_type))
        if bucket is not None:
            bucket.append(row)

    if flow.write:
        if "新增" in function_name or "创建" in function_name:
            flow.purpose = "创建新数据"
        elif "修改" in function_name or "更新" in function_name:
            flow.purpose = "更新已有数据"
        elif "删除" in function_name:
            flow.purpose = "删除数据"
        else:
            flow.purpose = "处理和保存数据"
    elif flow.read:
        flow.purpose = "查询和展示数据"
    else:
        flow.purpose = "处理业务流程"
    return flow


def split_attributes(data_attributes: str) -> list[str]:
    return [field.strip() for field in _ATTRIBUTE_SEPARATORS.split(data_attributes or "") if field.strip()]


# ---------------------------------------------------------------------------
# Field inference from attribute names
# ---------------------------------------------------------------------------


def infer_field_type(field_name: str) -> str:
    lower = field_name.lower()
    if re.search(r"id|编号|标识", lower):
        return "VARCHAR"
    if re.search(r"时间|日期", lower):
        return "DATETIME"
    if re.search(r"金额|价格|费用", lower):
        return "DECIMAL"
    if re.search(r"数量|次数|个数", lower):
        return "INT"
    if re.search(r"状态|类型|级别", lower):
        return "VARCHAR"
    if re.search(r"描述|说明|备注|内容", lower):
        return "TEXT"
    if re.search(r"是否|启用", lower):
        return "BOOLEAN"
    return "VARCHAR"


def infer_field_length(field_name: str, field_type: str) -> str:
    if field_type == "VARCHAR":
        lower = field_name.lower()
        if re.search(r"id|编号", lower):
            return "32"
        if "名称" in field_name:
            return "100"
        if re.search(r"电话|手机", field_name):
            return "20"
        return "255"
    if field_type == "DECIMAL":
        return "10,2"
    if field_type == "INT":
        return "11"
    return "-"


def infer_is_required(field_name: str, movement_type: str) -> str:
    if re.search(r"id|编号", field_name.lower()):
        return "是"
    if _movement_kind(movement_type) == "E":
        return "是"
    if re.search(r"备注|说明", field_name):
        return "否"
    return "是"


def infer_input_type(field_name: str) -> str:
    if re.search(r"时间|日期", field_name):
        return "datetime"
    if "密码" in field_name:
        return "password"
    if re.search(r"邮箱|email", field_name, re.IGNORECASE):
        return "email"
    if re.search(r"电话|手机", field_name):
        return "tel"
    if re.search(r"数量|金额", field_name):
        return "number"
    if re.search(r"描述|备注|内容", field_name):
        return "textarea"
    if re.search(r"类型|状态|级别", field_name):
        return "select"
    return "text"


def infer_display_format(field_name: str) -> str:
    if re.search(r"时间|日期", field_name):
        return "YYYY-MM-DD HH:mm:ss"
    if re.search(r"金额|价格", field_name):
        return "¥0,0.00"
    return "text"


def api_path(function_name: str) -> str:
    return re.sub(r"\W+", "_", function_name).strip("_").lower() or "function"


# ---------------------------------------------------------------------------
# Deterministic derivations
# ---------------------------------------------------------------------------


def derive_data_items(rows: list[DataMovementRow]) -> list[DataItem]:
    items: list[DataItem] = []
    seen: set[str] = set()
    for row in rows:
        for field in split_attributes(row.data_attributes):
            if field in seen:
                continue
            seen.add(field)
            field_type = infer_field_type(field)
            items.append(
                DataItem(
                    field_name=field,
                    field_type=field_type,
                    length=infer_field_length(field, field_type),
                    required=infer_is_required(field, row.data_movement_type),
                    description=field,
                    source=row.data_group or None,
                )
            )
    return items


def derive_interface_definition(function_name: str, flow: DataFlow) -> InterfaceDefinition:
    request_params = [
        InterfaceParam(param_name=field, param_type=infer_field_type(field), required="是", description=field)
        for row in flow.entry
        for field in split_attributes(row.data_attributes)
    ]
    response_params = [
        InterfaceParam(param_name=field, param_type=infer_field_type(field), description=field)
        for row in flow.exit
        for field in split_attributes(row.data_attributes)
    ]
    return InterfaceDefinition(
        method="POST",
        url=f"/api/{api_path(function_name)}",
        request_params=request_params,
        response_params=response_params,
    )


def derive_ui_elements(flow: DataFlow) -> UIElements:
    ui = UIElements(
        input_fields=[
            UIInputField(label=field, type=infer_input_type(field), required=True)
            for row in flow.entry
            for field in split_attributes(row.data_attributes)
        ],
        display_fields=[
            UIDisplayField(label=field, format=infer_display_format(field))
            for row in flow.exit
            for field in split_attributes(row.data_attributes)
        ],
    )
    ui.buttons.append(UIButton(label="提交", action="submit"))
    if flow.write:
        ui.buttons.append(UIButton(label="保存", action="save"))
    ui.buttons.append(UIButton(label="取消", action="cancel"))
    return ui


def derive_acceptance_criteria(flow: DataFlow, business_rules: list[BusinessRule]) -> list[AcceptanceCriterion]:
    criteria = [
        AcceptanceCriterion(
            id="AC-001",
            scenario="正常流程测试",
            precondition="用户已登录系统",
            steps=["1. 输入必填字段", "2. 点击提交按钮", "3. 系统处理请求"],
            expected="操作成功，显示成功提示信息",
        )
    ]
    if flow.entry:
        criteria.append(
            AcceptanceCriterion(
                id="AC-002",
                scenario="必填项校验",
                precondition="用户已登录系统",
                steps=["1. 不填写必填字段", "2. 点击提交按钮"],
                expected="系统提示必填项不能为空",
            )
        )
    criteria.append(
        AcceptanceCriterion(
            id="AC-003",
            scenario="权限控制测试",
            precondition="使用无权限账号登录",
            steps=["1. 尝试访问功能", "2. 系统检查权限"],
            expected="系统提示无权限，拒绝访问",
        )
    )
    if flow.write:
        criteria.append(
            AcceptanceCriterion(
                id="AC-004",
                scenario="数据保存失败处理",
                precondition="模拟数据库异常",
                steps=["1. 提交数据", "2. 数据库保存失败"],
                expected="系统回滚事务，提示保存失败",
            )
        )
    if business_rules:
        criteria.append(
            AcceptanceCriterion(
                id="AC-005",
                scenario="业务规则验证",
                precondition="准备测试数据",
                steps=["1. 输入违反业务规则的数据", "2. 提交请求"],
                expected="系统提示违反业务规则，拒绝操作",
            )
        )
    return criteria


def find_related_content(function_name: str, requirement_doc: RequirementDoc | None) -> str | None:
    """Lines of the source requirement document around mentions of the function's keywords."""
    if not requirement_doc or not requirement_doc.full_text:
        return None
    keywords = [word for word in function_name.split() if len(word) >= 2 and word not in _STOP_WORDS]
    if not keywords:
        return None

    lines = requirement_doc.full_text.split("\n")
    related: list[str] = []
    for idx, line in enumerate(lines):
        if any(keyword in line for keyword in keywords):
            start = max(0, idx - _RELATED_CONTEXT_WINDOW)
            end = min(len(lines), idx + _RELATED_CONTEXT_WINDOW + 1)
            related.extend(lines[start:end])
            if len(related) > _RELATED_MAX_LINES:
                break
    return "\n".join(related) if related else None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ReasoningService:
    """Infers the content of one functional block from its data movements.

    Only the function description and the business rules go through the
    text-generation capability; a failed call degrades to a fallback, never to an
    exception.
    """

    async def reason(
        self,
        text_generator: TextGenerator,
        request_id: str,
        function_name: str,
        rows: list[DataMovementRow],
        context: GenerationContext,
    ) -> ReasoningResult:
        logger.info("[%s] Reasoning about function '%s' (%d data movements)", request_id, function_name, len(rows))
        flow = analyze_data_flow(function_name, rows)

        description = await self._reason_description(text_generator, request_id, function_name, rows, flow, context)
        business_rules = await self._reason_business_rules(text_generator, request_id, function_name, rows, context)

        inferred = InferredContent(
            function_description=description,
            business_rules=business_rules,
            data_items=derive_data_items(rows),
            interface_definition=derive_interface_definition(function_name, flow),
            ui_elements=derive_ui_elements(flow),
            acceptance_criteria=derive_acceptance_criteria(flow, business_rules),
        )
        return ReasoningResult(function_name=function_name, inferred_content=inferred)

    async def _reason_description(
        self,
        text_generator: TextGenerator,
        request_id: str,
        function_name: str,
        rows: list[DataMovementRow],
        flow: DataFlow,
        context: GenerationContext,
    ) -> str:
        style_guidelines: list[str] = []
        understanding = context.deep_template_understanding
        if understanding and understanding.style_analysis:
            style = understanding.style_analysis
            if style.get("tone"):
                style_guidelines.append(f"语气: {style['tone']}")
            style_guidelines.extend(str(line) for line in style.get("writing_guidelines") or [])
        structure_hints: list[str] = []
        if understanding and understanding.structural_analysis:
            patterns = understanding.structural_analysis.get("structural_patterns") or []
            structure_hints = [str(line) for line in patterns]

        llm_context = {
            "function_name": function_name,
            "rows": rows,
            "data_flow": {
                "entry": [row.data_group for row in flow.entry],
                "read": [row.data_group for row in flow.read],
                "write": [row.data_group for row in flow.write],
                "exit": [row.data_group for row in flow.exit],
                "purpose": flow.purpose,
            },
            "related_content": find_related_content(function_name, context.requirement_doc),
            "style_guidelines": style_guidelines,
            "structure_hints": structure_hints,
        }
        try:
            return await generate_text_with_template(
                text_generator,
                request_id,
                step_name=f"function_description ('{function_name}')",
                template_name="function_description.jinja2",
                context=llm_context,
                system_prompt="你是专业的需求分析师，擅长撰写清晰、准确的功能说明。",
                temperature=0.7,
                max_tokens=1500,
            )
        except LLMError as e:
            logger.warning("[%s] Function description for '%s' degraded: %s", request_id, function_name, str(e))
            return f"{function_name}功能用于{flow.purpose or '处理相关业务'}。"

    async def _reason_business_rules(
        self,
        text_generator: TextGenerator,
        request_id: str,
        function_name: str,
        rows: list[DataMovementRow],
        context: GenerationContext,
    ) -> list[BusinessRule]:
        data_groups = list(dict.fromkeys(row.data_group for row in rows if row.data_group))
        understanding = context.deep_template_understanding
        examples = understanding.examples if understanding else None
        try:
            response = await execute_llm_step_with_template(
                text_generator,
                request_id,
                step_name=f"business_rules ('{function_name}')",
                template_name="business_rules.jinja2",
                context={
                    "function_name": function_name,
                    "rows": rows,
                    "data_groups": data_groups,
                    "example_rules": examples.business_rules if examples else [],
                    "example_tables": examples.tables if examples else [],
                },
                response_model=BusinessRulesResponse,
                system_prompt="你是业务分析专家，擅长从业务流程中提取业务规则。",
                temperature=0.6,
                max_tokens=2000,
            )
            return response.rules
        except (LLMError, JSONParsingError) as e:
            logger.warning("[%s] Business rules for '%s' degraded: %s", request_id, function_name, str(e))
            return []
