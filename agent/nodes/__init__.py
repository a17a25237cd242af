from agent.nodes.base import BaseExecutionNode, ExecutionState, PlanAttempt
from agent.nodes.planning import PlanningNodes
from agent.nodes.guard import GuardNodes
from agent.nodes.executor import ExecutorNodes
from agent.nodes.outcome import OutcomeNodes

class ExecutionGraphNodes(
    PlanningNodes,
    GuardNodes,
    ExecutorNodes,
    OutcomeNodes
):
    """
    Nodes of the plan/guard/execute/retry state machine.
    Each node is one named state; it reads the state and returns a partial update.
    """
    def __init__(self, planner, guard, executor, max_limit=None):
        super().__init__(planner=planner, guard=guard, executor=executor, max_limit=max_limit)


__all__ = ["ExecutionGraphNodes", "ExecutionState", "PlanAttempt", "BaseExecutionNode"]
