"""
条件表达式评估
"""
import ast
import logging
from typing import Any, Dict

from ..exceptions import ConditionEvaluationError


logger = logging.getLogger(__name__)

# 条件表达式允许的语法节点：比较、布尔与算术运算、变量、常量与下标
_ALLOWED_NODES = (
    ast.Expression, ast.BoolOp, ast.And, ast.Or, ast.UnaryOp, ast.Not, ast.USub, ast.UAdd,
    ast.BinOp, ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.Is, ast.IsNot, ast.In, ast.NotIn,
    ast.IfExp, ast.Name, ast.Load, ast.Constant, ast.Subscript, ast.Slice,
    ast.Tuple, ast.List, ast.Set,
)


class _ConditionScope(dict):
    """表达式变量作用域，未定义的变量视为 None"""

    def __missing__(self, key):
        return None


class ConditionEvaluator:
    """顺序流条件评估器"""

    ALIASES = {"true": True, "false": False, "null": None}

    def __init__(self):
        self._compiled: Dict[str, Any] = {}

    def evaluate(self, expression: str, data: Dict[str, Any]) -> bool:
        """
        评估条件表达式

        Args:
            expression: Python 表达式，可直接引用请求数据中的变量
            data: 流程请求数据

        Returns:
            bool: 条件是否成立
        """
        if expression is None or not expression.strip():
            return True

        scope = _ConditionScope(self.ALIASES)
        scope.update(data or {})

        code = self._compile(expression)
        try:
            result = eval(code, {"__builtins__": {}}, scope)
        except Exception as e:
            raise ConditionEvaluationError(expression, e) from e

        logger.debug(f"Condition '{expression}' evaluated to {result!r}")
        return bool(result)

    def check(self, expression: str):
        """检查表达式只包含允许的语法，返回编译结果"""
        try:
            tree = ast.parse(expression.strip(), "<condition>", "eval")
        except SyntaxError as e:
            raise ConditionEvaluationError(expression, e) from e

        for node in ast.walk(tree):
            if not isinstance(node, _ALLOWED_NODES):
                raise ConditionEvaluationError(
                    expression, ValueError(f"'{type(node).__name__}' is not allowed in conditions")
                )
            if isinstance(node, ast.Name) and node.id.startswith("_"):
                raise ConditionEvaluationError(
                    expression, ValueError(f"name '{node.id}' is not allowed in conditions")
                )
        return compile(tree, "<condition>", "eval")

    def _compile(self, expression: str):
        code = self._compiled.get(expression)
        if code is None:
            code = self.check(expression)
            self._compiled[expression] = code
        return code
