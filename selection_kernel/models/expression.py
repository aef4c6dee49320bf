"""Expression — the tagged-union AST evaluated against an execution context."""

from typing import Annotated, Any, ClassVar, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter


class _ExpressionNode(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: ClassVar[str] = ""


class FieldAccessExpression(_ExpressionNode):
    """Dot-path lookup into the scoped proposal (or the context)."""

    kind: ClassVar[str] = "field"

    field: str                              # e.g. "voteData.likesCount"


class ComparisonExpression(_ExpressionNode):
    kind: ClassVar[str] = "comparison"

    operator: str                           # equals | lessThan | in | matches ...
    left: "Expression"
    right: "Expression"


class LogicalExpression(_ExpressionNode):
    """Only one of and/or/not is expected; and wins, then or, then not."""

    kind: ClassVar[str] = "logical"

    and_: Optional[List["Expression"]] = Field(default=None, alias="and")
    or_: Optional[List["Expression"]] = Field(default=None, alias="or")
    not_: Optional["Expression"] = Field(default=None, alias="not")


class ArithmeticExpression(_ExpressionNode):
    kind: ClassVar[str] = "arithmetic"

    operator: str                           # add | subtract | multiply | divide | modulo | power
    operands: List["Expression"]


class FunctionCallExpression(_ExpressionNode):
    kind: ClassVar[str] = "function"

    function: str                           # e.g. "coalesce", "if"
    arguments: List["Expression"]


class LiteralExpression(_ExpressionNode):
    kind: ClassVar[str] = "literal"

    value: Any


class VariableExpression(_ExpressionNode):
    kind: ClassVar[str] = "variable"

    variable: str                           # e.g. "$threshold"


def expression_kind(data: Any) -> Optional[str]:
    """
    Classify raw expression data by the discriminating keys present.

    The order matters: "operator" alone is ambiguous between comparison and
    arithmetic, so left/right is checked before operands.
    """
    if isinstance(data, _ExpressionNode):
        return data.kind
    if not isinstance(data, dict):
        return None
    if "field" in data:
        return "field"
    if "operator" in data and "left" in data and "right" in data:
        return "comparison"
    if "and" in data or "or" in data or "not" in data:
        return "logical"
    if "operator" in data and "operands" in data:
        return "arithmetic"
    if "function" in data and "arguments" in data:
        return "function"
    if "value" in data:
        return "literal"
    if "variable" in data:
        return "variable"
    return None


Expression = Annotated[
    Union[
        Annotated[FieldAccessExpression, Tag("field")],
        Annotated[ComparisonExpression, Tag("comparison")],
        Annotated[LogicalExpression, Tag("logical")],
        Annotated[ArithmeticExpression, Tag("arithmetic")],
        Annotated[FunctionCallExpression, Tag("function")],
        Annotated[LiteralExpression, Tag("literal")],
        Annotated[VariableExpression, Tag("variable")],
    ],
    Discriminator(
        expression_kind,
        custom_error_type="unknown_expression",
        custom_error_message="Unknown expression type",
    ),
]

for _model in (
    ComparisonExpression,
    LogicalExpression,
    ArithmeticExpression,
    FunctionCallExpression,
):
    _model.model_rebuild()

_expression_adapter = TypeAdapter(Expression)


def parse_expression(data: Any) -> "Expression":
    """Validate raw (JSON-shaped) data into an Expression model."""
    return _expression_adapter.validate_python(data)
