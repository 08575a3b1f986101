"""
User-info extraction tool: asks the chat model for a JSON person record and validates it.
Fenced or bare JSON is accepted; anything unparseable or off-schema is Invalid.
"""
import logging
from typing import TYPE_CHECKING, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.tools import ToolException, tool
from pydantic import BaseModel, Field, ValidationError

from graph.decoder import content_text
from tools.base import ExtractedUser, Invalid
from tools.json_block import parse_json_object

if TYPE_CHECKING:
    from graph.context import TurnContext

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.3

FIELDS_PROMPT = """从用户描述中提取以下信息并返回JSON格式：
- 姓名 (name)
- 年龄 (age)
- 邮箱 (email)
- 手机号 (phone)
- 地址 (address): 包含城市(city)、区县(district)、街道(street)
- 职业 (occupation)
- 兴趣爱好 (hobbies) - 数组格式

返回格式示例：

{
  "name": "张三",
  "age": 25,
  "email": "zhangsan@example.com",
  "phone": "13800138000",
  "address": {
    "city": "北京",
    "district": "朝阳区",
    "street": "建国路88号"
  },
  "occupation": "软件工程师",
  "hobbies": ["编程", "阅读", "旅行"]
}
"""

EXTRACTION_PROMPT = FIELDS_PROMPT + """
注意：
1. 如果没有解析到值的字段，请不要返回该字段。
2. 直接返回 JSON，不要使用 markdown 代码块。"""

AGENT_PROMPT = FIELDS_PROMPT + """
注意：如果没有解析到值的字段，请不要返回该字段。"""

AGENT_THINKING_SUFFIX = "\n\n请先思考如何提取这些信息。"

ExtractionOutcome = Union[ExtractedUser, Invalid]


def validate_user_json(text: str) -> ExtractionOutcome:
    """Locate the JSON object in model text and validate it as an ExtractedUser."""
    data = parse_json_object(text)
    if isinstance(data, Invalid):
        return data
    try:
        return ExtractedUser.model_validate(data)
    except ValidationError as e:
        logger.warning("Extracted user failed validation: %s", e.errors(include_url=False)[:3])
        return Invalid(f"schema validation failed ({e.error_count()} errors)")


def extract_user_impl(content: str, llm: BaseChatModel) -> ExtractionOutcome:
    """One model call with the fixed extraction prompt; the reply must be a person record."""
    messages = [SystemMessage(content=EXTRACTION_PROMPT), HumanMessage(content=content)]
    try:
        response = llm.invoke(messages)
    except Exception as e:
        logger.error("Extraction model call failed: %s", str(e)[:200])
        return Invalid("extraction model call failed")

    text = content_text(response.content)
    logger.debug("Extraction response: %s", text[:500])
    return validate_user_json(text)


class ExtractUserInput(BaseModel):
    """Structured input for extraction: the user's own words."""
    content: str = Field(description="用户的自然语言描述")


def get_extract_user_tool(ctx: "TurnContext"):
    """Build the extractUserInfo tool bound to one turn's context (config snapshot and model)."""
    from graph.dispatch import run_tool
    from graph.events import ToolName

    @tool("extractUserInfo", args_schema=ExtractUserInput)
    def extract_user_info(content: str) -> str:
        """从用户的自然语言描述中提取结构化的用户信息，包括姓名、年龄、邮箱、手机、地址、职业、兴趣爱好等"""
        result = run_tool(ctx, ToolName.EXTRACT_USER, {"content": content})
        if not result.success:
            raise ToolException(result.error)
        return result.payload.model_dump_json(exclude_none=True)

    return extract_user_info
