"""
Set-variable block: descriptor → expression → (client action | sandboxed value) → commit.
"""
from set_variable.models import (
    SetVariableType,
    SetVariableOptions,
    SetVariableBlock,
    MapListItemParams,
    ExecutionRoute,
    ExecuteLogicResponse,
    ClientSideAction,
    ScriptToExecute,
)
from set_variable.time_resolver import InvalidTimeZone, resolve_instant
from set_variable.expressions import ExpressionSynthesizer
from set_variable.routing import route_execution
from set_variable.evaluator import SetVariableEvaluator
from set_variable.executor import (
    SetVariableExecutor,
    execute_set_variable,
    validate_set_variable_options,
)
