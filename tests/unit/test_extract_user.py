"""Unit tests for extract_user and json_block: fenced/bare JSON, strict validation, Invalid outcomes."""
import json

import pytest
from unittest.mock import MagicMock
from langchain_core.messages import AIMessage, SystemMessage
from langchain_core.tools import ToolException

from tools.base import ExtractedUser, Invalid
from tools.extract_user import EXTRACTION_PROMPT, extract_user_impl, get_extract_user_tool, validate_user_json
from tools.json_block import find_json_text, parse_json_object

ZHANGSAN_TEXT = "我叫张三，今年25岁，住在北京市朝阳区建国路88号，邮箱zhangsan@example.com，手机13800138000"

ZHANGSAN_JSON = {
    "name": "张三",
    "age": 25,
    "email": "zhangsan@example.com",
    "phone": "13800138000",
    "address": {"city": "北京", "district": "朝阳区", "street": "建国路88号"},
}


def _llm_replying(text):
    llm = MagicMock()
    llm.invoke.return_value = AIMessage(content=text)
    return llm


class TestJsonBlock:
    def test_fenced_json_block(self):
        text = '好的：\n```json\n{"name": "李四"}\n```\n以上。'
        assert parse_json_object(text) == {"name": "李四"}

    def test_fenced_block_without_language(self):
        assert parse_json_object('```\n{"a": 1}\n```') == {"a": 1}

    def test_fence_wins_over_braces_outside(self):
        text = 'note {x} ```json\n{"a": 1}\n```'
        assert find_json_text(text) == '{"a": 1}'

    def test_bare_object_with_surrounding_prose(self):
        text = '提取结果如下 {"name": "王五", "address": {"city": "上海"}} 希望有帮助'
        assert parse_json_object(text) == {"name": "王五", "address": {"city": "上海"}}

    def test_longest_balanced_span_wins(self):
        text = '{"a": 1} and then {"b": {"c": 2}, "d": 3}'
        assert parse_json_object(text) == {"b": {"c": 2}, "d": 3}

    def test_braces_inside_strings_are_ignored(self):
        text = 'x {"note": "use } carefully", "n": 1} y'
        assert parse_json_object(text) == {"note": "use } carefully", "n": 1}

    def test_no_json_is_invalid(self):
        result = parse_json_object("对不起，我无法提取任何信息。")
        assert isinstance(result, Invalid)

    def test_malformed_json_is_invalid(self):
        result = parse_json_object("{'name': '张三'}")
        assert isinstance(result, Invalid)
        assert "malformed" in result.reason

    def test_non_object_json_is_invalid(self):
        assert isinstance(parse_json_object("```json\n[1, 2]\n```"), Invalid)

    def test_unbalanced_braces_is_invalid(self):
        assert isinstance(parse_json_object('{"name": "张三"'), Invalid)


class TestValidation:
    def test_absent_fields_stay_absent(self):
        user = validate_user_json(json.dumps(ZHANGSAN_JSON, ensure_ascii=False))
        assert isinstance(user, ExtractedUser)
        assert user.occupation is None
        assert user.hobbies is None
        assert "occupation" not in user.model_dump(exclude_none=True)

    def test_string_age_is_rejected_not_coerced(self):
        data = {**ZHANGSAN_JSON, "age": "25"}
        assert isinstance(validate_user_json(json.dumps(data)), Invalid)

    def test_non_numeric_age_is_rejected(self):
        data = {**ZHANGSAN_JSON, "age": "二十五"}
        assert isinstance(validate_user_json(json.dumps(data)), Invalid)

    def test_bool_age_is_rejected(self):
        assert isinstance(validate_user_json(json.dumps({"name": "a", "age": True})), Invalid)

    def test_bad_email_is_rejected(self):
        assert isinstance(validate_user_json(json.dumps({"name": "a", "email": "not-an-email"})), Invalid)

    def test_hobbies_must_be_strings(self):
        assert isinstance(validate_user_json(json.dumps({"name": "a", "hobbies": ["读书", 3]})), Invalid)

    def test_empty_record_is_invalid(self):
        assert isinstance(validate_user_json("{}"), Invalid)

    def test_unknown_keys_ignored(self):
        user = validate_user_json('{"name": "a", "nickname": "b"}')
        assert user == ExtractedUser(name="a")


class TestExtractUserImpl:
    def test_extracts_zhangsan(self):
        llm = _llm_replying(json.dumps(ZHANGSAN_JSON, ensure_ascii=False))
        user = extract_user_impl(ZHANGSAN_TEXT, llm)

        assert isinstance(user, ExtractedUser)
        assert user.name == "张三"
        assert user.age == 25
        assert user.address.city == "北京"
        assert user.address.district == "朝阳区"
        assert user.email == "zhangsan@example.com"
        assert user.phone == "13800138000"
        assert user.occupation is None
        assert user.hobbies is None

    def test_sends_fixed_prompt_and_user_text(self):
        llm = _llm_replying('{"name": "张三"}')
        extract_user_impl(ZHANGSAN_TEXT, llm)
        messages = llm.invoke.call_args[0][0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == EXTRACTION_PROMPT
        assert messages[1].content == ZHANGSAN_TEXT

    def test_fenced_reply(self):
        llm = _llm_replying('```json\n{"name": "张三", "hobbies": ["编程", "阅读"]}\n```')
        user = extract_user_impl("...", llm)
        assert user.hobbies == ["编程", "阅读"]

    def test_no_person_info_is_invalid(self):
        llm = _llm_replying("这段文字里没有任何个人信息。")
        assert isinstance(extract_user_impl("今天股市怎么样", llm), Invalid)

    def test_model_failure_is_invalid_not_raised(self):
        llm = MagicMock()
        llm.invoke.side_effect = ConnectionError("ollama down")
        assert isinstance(extract_user_impl(ZHANGSAN_TEXT, llm), Invalid)


class TestExtractUserTool:
    def test_uses_turn_model_and_returns_json(self, ctx, fake_llm):
        fake_llm.invoke.return_value = AIMessage(content='{"name": "张三", "age": 25}')
        text = get_extract_user_tool(ctx).func(ZHANGSAN_TEXT)

        assert json.loads(text) == {"name": "张三", "age": 25}
        assert fake_llm.invoke.call_args[0][0][1].content == ZHANGSAN_TEXT

    def test_invalid_reply_raises_tool_exception(self, ctx, fake_llm):
        fake_llm.invoke.return_value = AIMessage(content="没有个人信息")
        with pytest.raises(ToolException, match="提取用户信息失败"):
            get_extract_user_tool(ctx).func("今天星期几")

    def test_schema(self, ctx):
        extract_tool = get_extract_user_tool(ctx)
        assert extract_tool.name == "extractUserInfo"
        assert "content" in extract_tool.args
