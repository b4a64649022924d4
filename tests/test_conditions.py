"""
条件表达式测试
"""
import pytest

from process_engine.core.conditions import ConditionEvaluator
from process_engine.exceptions import ConditionEvaluationError, FlowResolutionError


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


def test_empty_condition_holds(evaluator):
    assert evaluator.evaluate(None, {}) is True
    assert evaluator.evaluate("   ", {}) is True


def test_comparison_against_request_data(evaluator):
    assert evaluator.evaluate("amount >= 100 and currency == 'EUR'", {"amount": 150, "currency": "EUR"})
    assert not evaluator.evaluate("amount >= 100", {"amount": 5})


def test_lowercase_literals(evaluator):
    assert evaluator.evaluate("approved == true", {"approved": True})
    assert evaluator.evaluate("note == null", {"note": None})


def test_undefined_variable_is_none(evaluator):
    assert evaluator.evaluate("missing is None", {})
    assert not evaluator.evaluate("missing", {})


def test_data_overrides_literals(evaluator):
    assert not evaluator.evaluate("true", {"true": False})


def test_builtins_are_unavailable(evaluator):
    with pytest.raises(ConditionEvaluationError):
        evaluator.evaluate("__import__('os')", {})


@pytest.mark.parametrize("expression", [
    "[c for c in ().__class__.__base__.__subclasses__() if c.__name__ == '_wrap_close'][0]"
    ".__init__.__globals__['system']('true') == 0",
    "().__class__",
    "amount.real > 0",
    "len(items) > 0",
    "(lambda: 1)() == 1",
    "_secret == 1",
    "2 ** 10 > 1",
])
def test_disallowed_syntax_is_rejected(evaluator, expression):
    with pytest.raises(ConditionEvaluationError) as exc_info:
        evaluator.check(expression)

    assert "not allowed" in str(exc_info.value)
    with pytest.raises(ConditionEvaluationError):
        evaluator.evaluate(expression, {"amount": 1, "items": [1]})


def test_allowed_syntax(evaluator):
    data = {"amount": 5, "tags": ["a", "b"], "order": {"total": 12}}
    assert evaluator.evaluate("order['total'] > 10 and 'a' in tags", data)
    assert evaluator.evaluate("-amount < 0 if amount else false", data)
    assert evaluator.evaluate("status not in ('closed', 'void')", data)
    assert evaluator.evaluate("tags[:1] == ['a']", data)


def test_errors_are_wrapped(evaluator):
    with pytest.raises(ConditionEvaluationError) as exc_info:
        evaluator.evaluate("amount >", {"amount": 1})

    assert exc_info.value.expression == "amount >"
    assert isinstance(exc_info.value, FlowResolutionError)


def test_type_errors_are_wrapped(evaluator):
    with pytest.raises(ConditionEvaluationError):
        evaluator.evaluate("missing > 1", {})
