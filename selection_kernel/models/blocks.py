"""Blocks and pipelines — the declarative program a selection run executes."""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from selection_kernel.models.expression import (
    ComparisonExpression,
    Expression,
    FieldAccessExpression,
    LiteralExpression,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class MergeStrategy(str, Enum):
    UNION = "union"                 # Dedupe by id, first occurrence wins
    INTERSECTION = "intersection"   # Present in every input
    CONCAT = "concat"               # Flatten, duplicates kept
    CUSTOM = "custom"               # Reserved; not implemented


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AggregationOperation(str, Enum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class BaseBlock(_CamelModel):
    """Fields shared by every block type."""

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    input: Optional[str] = None             # Named output to read from
    output: Optional[str] = None            # Name to store this block's result under


class FilterBlock(BaseBlock):
    type: Literal["filter"]
    condition: Expression


class TransformBlock(BaseBlock):
    type: Literal["transform"]
    transformations: Dict[str, Expression]  # field path -> value


class ComputeBlock(BaseBlock):
    type: Literal["compute"]
    computations: Dict[str, Expression]     # variable name -> value


class BranchPath(_CamelModel):
    condition: Expression
    blocks: List["Block"]
    output: Optional[str] = None


class BranchDefault(_CamelModel):
    blocks: List["Block"]
    output: Optional[str] = None


class BranchBlock(BaseBlock):
    type: Literal["branch"]
    branches: List[BranchPath]
    default: Optional[BranchDefault] = None


class MergeBlock(BaseBlock):
    type: Literal["merge"]
    inputs: List[str]
    strategy: MergeStrategy
    custom_merge: Optional[Expression] = None


class AggregationSpec(_CamelModel):
    operation: AggregationOperation
    field: Optional[str] = None             # Not needed for count


class GroupBlock(BaseBlock):
    type: Literal["group"]
    group_by: Union[str, Expression]
    aggregations: Optional[Dict[str, AggregationSpec]] = None


class LimitBlock(BaseBlock):
    type: Literal["limit"]
    count: Union[int, float, Expression]
    offset: Optional[Union[int, float, Expression]] = None


class SortCriterion(_CamelModel):
    field: Union[str, Expression]
    order: SortOrder = SortOrder.ASC
    nulls_first: bool = False


class SortBlock(BaseBlock):
    type: Literal["sort"]
    sort_by: List[SortCriterion]


class ScoringCriterion(_CamelModel):
    """One weighted term of a composite score."""

    field: Optional[Union[str, Expression]] = None
    expression: Optional[Expression] = None
    weight: float
    normalize: bool = False                 # Min-max over the current set
    invert: bool = False                    # 1 - value, for "fewer is better"


class ScoreBlock(BaseBlock):
    type: Literal["score"]
    score_field: str                        # e.g. "metadata.finalScore"
    formula: Union[List[ScoringCriterion], Expression]


class DebugBlock(BaseBlock):
    type: Literal["debug"]
    message: Optional[str] = None
    log_fields: Optional[List[str]] = None


Block = Annotated[
    Union[
        FilterBlock,
        TransformBlock,
        ComputeBlock,
        BranchBlock,
        MergeBlock,
        GroupBlock,
        LimitBlock,
        SortBlock,
        ScoreBlock,
        DebugBlock,
    ],
    Field(discriminator="type"),
]

BranchPath.model_rebuild()
BranchDefault.model_rebuild()
BranchBlock.model_rebuild()


class SelectionPipeline(_CamelModel):
    """Top-level pipeline definition, as stored on a process phase."""

    version: str = "1.0.0"
    blocks: List[Block]
    output: Optional[str] = None            # Named output holding the final result
    variables: Dict[str, Any] = {}          # Initial variables


_block_adapter = TypeAdapter(Block)


def parse_block(data: Any) -> Block:
    """Validate raw block data into the matching block model."""
    return _block_adapter.validate_python(data)


def parse_pipeline(data: Any) -> SelectionPipeline:
    """Validate raw pipeline data; an existing SelectionPipeline passes through."""
    if isinstance(data, SelectionPipeline):
        return data
    return SelectionPipeline.model_validate(data)


def dump_pipeline(pipeline: SelectionPipeline) -> dict:
    """Serialize back to the stored camelCase JSON shape."""
    # exclude_none would turn {"value": null} into an unparseable {}
    return pipeline.model_dump(mode="json", by_alias=True, exclude_defaults=True)


DEFAULT_PIPELINE = SelectionPipeline(
    version="1.0.0",
    blocks=[
        FilterBlock(
            id="filter-shortlisted",
            type="filter",
            name="Keep shortlisted proposals",
            condition=ComparisonExpression(
                operator="equals",
                left=FieldAccessExpression(field="status"),
                right=LiteralExpression(value="shortlisted"),
            ),
        )
    ],
)
