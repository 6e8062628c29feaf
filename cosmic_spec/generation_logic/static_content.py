"""Fixed prose used by the header and footer chapters and by the per-function placeholders."""

OVERVIEW_TITLE = "概述"
BACKGROUND_TITLE = "项目背景"
GOALS_TITLE = "系统目标"
FUNCTIONAL_CHAPTER_TITLE = "功能需求"
SYSTEM_REQUIREMENTS_TITLE = "系统需求"
APPENDIX_TITLE = "附录"

DEFAULT_PROJECT_BACKGROUND = "本项目旨在构建一个先进的业务系统，满足日益增长的业务需求。"
DEFAULT_BUSINESS_GOALS = (
    "提升业务处理效率",
    "优化用户体验",
    "确保系统稳定性和安全性",
)

TEMPLATE_CHAPTER_TEXT = "（此处为模板章节 {number} 的内容）"

PERFORMANCE_REQUIREMENTS = (
    "系统响应时间应在3秒以内",
    "支持至少1000并发用户",
    "数据库查询优化，常用查询在1秒内完成",
)
SECURITY_REQUIREMENTS = (
    "所有用户操作需要身份认证",
    "敏感数据需加密存储",
    "系统日志记录所有关键操作",
)
GLOSSARY_TERMS = (
    ("COSMIC", "国际标准的功能规模度量方法"),
    ("CFP", "COSMIC功能点"),
)

# Per-function sub-sections: (suffix, heading, placeholder when nothing was inferred)
FUNCTION_SECTIONS = (
    (1, "功能说明", "本功能用于{name}。"),
    (2, "业务规则", "（业务规则待补充）"),
    (3, "处理数据", "（数据项待补充）"),
    (4, "接口设计", "（接口设计待补充）"),
    (5, "界面设计", "（界面设计待补充）"),
    (6, "验收标准", "（验收标准待补充）"),
)

CELL_FILLER = "待定义"
