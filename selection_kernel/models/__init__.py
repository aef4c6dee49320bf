"""Selection kernel data models."""

from selection_kernel.models.blocks import (
    DEFAULT_PIPELINE,
    AggregationOperation,
    AggregationSpec,
    BaseBlock,
    Block,
    BranchBlock,
    BranchDefault,
    BranchPath,
    ComputeBlock,
    DebugBlock,
    FilterBlock,
    GroupBlock,
    LimitBlock,
    MergeBlock,
    MergeStrategy,
    ScoreBlock,
    ScoringCriterion,
    SelectionPipeline,
    SortBlock,
    SortCriterion,
    SortOrder,
    TransformBlock,
    dump_pipeline,
    parse_block,
    parse_pipeline,
)
from selection_kernel.models.config import EngineConfig
from selection_kernel.models.context import (
    BlockExecutionResult,
    ExecutionContext,
    ProcessInfo,
    ProposalGroup,
)
from selection_kernel.models.engagement import (
    ProfileRelationship,
    RelationshipType,
    VoteAggregation,
    VoteSelection,
    VoteSubmission,
)
from selection_kernel.models.expression import (
    ArithmeticExpression,
    ComparisonExpression,
    Expression,
    FieldAccessExpression,
    FunctionCallExpression,
    LiteralExpression,
    LogicalExpression,
    VariableExpression,
    parse_expression,
)

__all__ = [
    "DEFAULT_PIPELINE",
    "AggregationOperation",
    "AggregationSpec",
    "ArithmeticExpression",
    "BaseBlock",
    "Block",
    "BlockExecutionResult",
    "BranchBlock",
    "BranchDefault",
    "BranchPath",
    "ComparisonExpression",
    "ComputeBlock",
    "DebugBlock",
    "EngineConfig",
    "ExecutionContext",
    "Expression",
    "FieldAccessExpression",
    "FilterBlock",
    "FunctionCallExpression",
    "GroupBlock",
    "LimitBlock",
    "LiteralExpression",
    "LogicalExpression",
    "MergeBlock",
    "MergeStrategy",
    "ProcessInfo",
    "ProfileRelationship",
    "ProposalGroup",
    "RelationshipType",
    "ScoreBlock",
    "ScoringCriterion",
    "SelectionPipeline",
    "SortBlock",
    "SortCriterion",
    "SortOrder",
    "TransformBlock",
    "VariableExpression",
    "VoteAggregation",
    "VoteSelection",
    "VoteSubmission",
    "dump_pipeline",
    "parse_block",
    "parse_expression",
    "parse_pipeline",
]
