"""Command router: parsed intents to a single agent or a multi-step workflow.

Per command the status moves ``pending -> running -> {completed | failed |
cancelled | timeout | requires_approval}``.  Permission and budget outcomes
are returned as results; only programmer errors escape as exceptions.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .clock import Clock, utcnow
from .collaborators import BudgetMonitor, IntentParser
from .commands import (
    CommandResult,
    EntityType,
    ExecutionContext,
    ExecutionStep,
    IntentAction,
    ParsedIntent,
    RetryPolicy,
    WorkflowDefinition,
)
from .config import RouterConfig
from .errors import PlanValidationError, WorkflowStepError
from .results import coerce_response, parse_agent_result
from .telemetry import LogLevel, Telemetry
from .types import (
    AgentExecutionResult,
    AgentType,
    ExecutionError,
    ExecutionStatus,
    Level,
    MemoryOutcome,
    MemoryPerformance,
    MemoryRecord,
)
from ..agents.registry import AgentRegistry
from ..governance.gatekeeper import CommandGatekeeper, GateDecision
from ..memory.index import MemoryIndex
from ..oversight.models import ApprovalRequest
from ..oversight.store import OversightStore


@dataclass(frozen=True)
class RoutingRule:
    name: str
    condition: Callable[[ParsedIntent], bool]
    agent_type: AgentType
    priority: int
    fallback_agents: Tuple[AgentType, ...] = ()


def _requests_metric(intent: ParsedIntent, metric: str) -> bool:
    metrics = intent.parameters.get("metrics")
    if isinstance(metrics, str):
        return metric == metrics
    if isinstance(metrics, (list, tuple, set, frozenset)):
        return metric in metrics
    return False


DEFAULT_ROUTING_RULES: Tuple[RoutingRule, ...] = (
    RoutingRule(
        name="boardroom_report",
        condition=lambda intent: intent.primary_action is IntentAction.GENERATE_REPORT
        and intent.parameters.get("report_type") == "boardroom",
        agent_type=AgentType.BOARDROOM,
        priority=10,
    ),
    RoutingRule(
        name="forecast",
        condition=lambda intent: intent.primary_action is IntentAction.CREATE_FORECAST,
        agent_type=AgentType.BOARDROOM,
        priority=9,
    ),
    RoutingRule(
        name="executive_report",
        condition=lambda intent: intent.primary_action is IntentAction.GENERATE_REPORT,
        agent_type=AgentType.EXECUTIVE,
        priority=8,
        fallback_agents=(AgentType.BOARDROOM,),
    ),
    RoutingRule(
        name="campaign_entity",
        condition=lambda intent: intent.entity_type is EntityType.CAMPAIGN,
        agent_type=AgentType.CAMPAIGN,
        priority=7,
    ),
    RoutingRule(
        name="brand_alignment_metric",
        condition=lambda intent: _requests_metric(intent, "brand_alignment"),
        agent_type=AgentType.BRAND_VOICE,
        priority=6,
    ),
)

ACTION_AGENT_TABLE: Dict[IntentAction, AgentType] = {
    IntentAction.GENERATE_REPORT: AgentType.BOARDROOM,
    IntentAction.DOWNLOAD_REPORT: AgentType.BOARDROOM,
    IntentAction.CREATE_FORECAST: AgentType.BOARDROOM,
    IntentAction.PLAN_STRATEGY: AgentType.BOARDROOM,
    IntentAction.SCHEDULE_TASK: AgentType.BOARDROOM,
    IntentAction.GET_INSIGHTS: AgentType.INSIGHT,
    IntentAction.VIEW_ANALYTICS: AgentType.INSIGHT,
    IntentAction.GET_STATUS: AgentType.INSIGHT,
    IntentAction.CONFIGURE_SETTINGS: AgentType.INSIGHT,
    IntentAction.EXPLAIN: AgentType.INSIGHT,
    IntentAction.CLARIFY: AgentType.INSIGHT,
    IntentAction.HELP: AgentType.INSIGHT,
    IntentAction.UNKNOWN: AgentType.INSIGHT,
    IntentAction.CREATE_CAMPAIGN: AgentType.CAMPAIGN,
    IntentAction.UPDATE_CAMPAIGN: AgentType.CAMPAIGN,
    IntentAction.PAUSE_CAMPAIGN: AgentType.CAMPAIGN,
    IntentAction.LAUNCH_CAMPAIGN: AgentType.CAMPAIGN,
    IntentAction.ANALYZE_CAMPAIGN: AgentType.CAMPAIGN,
    IntentAction.OPTIMIZE_BUDGET: AgentType.CAMPAIGN,
    IntentAction.GENERATE_CONTENT: AgentType.CONTENT,
    IntentAction.OPTIMIZE_CONTENT: AgentType.CONTENT,
    IntentAction.REVIEW_CONTENT: AgentType.BRAND_VOICE,
}

REPORT_WORKFLOW = WorkflowDefinition(
    id="comprehensive_report_generation",
    name="Comprehensive Report Generation",
    description="Generate a full boardroom report with insights and forecasts",
    triggers=[IntentAction.GENERATE_REPORT],
    steps=[
        ExecutionStep(
            id="data_gathering",
            description="Gather performance data",
            agent_type=AgentType.INSIGHT,
            action="gather_data",
            timeout_ms=5000,
            retry_policy=RetryPolicy(max_attempts=2, backoff_multiplier=1.5, initial_delay_ms=1000),
        ),
        ExecutionStep(
            id="trend_analysis",
            description="Analyse trends in the gathered data",
            agent_type=AgentType.TREND,
            action="analyze_trends",
            dependencies=["data_gathering"],
            timeout_ms=8000,
            retry_policy=RetryPolicy(max_attempts=2, backoff_multiplier=1.5, initial_delay_ms=1000),
        ),
        ExecutionStep(
            id="report_compilation",
            description="Compile the boardroom report",
            agent_type=AgentType.BOARDROOM,
            action="generate_report",
            dependencies=["data_gathering", "trend_analysis"],
            timeout_ms=10000,
            retry_policy=RetryPolicy(max_attempts=3, backoff_multiplier=2.0, initial_delay_ms=2000),
        ),
    ],
)


def step_layers(steps: Sequence[ExecutionStep]) -> List[List[ExecutionStep]]:
    """Order workflow steps into layers whose members can run concurrently."""

    known = {step.id for step in steps}
    for step in steps:
        missing = [dep for dep in step.dependencies if dep not in known]
        if missing:
            raise PlanValidationError(f"Step {step.id} depends on unknown steps: {', '.join(missing)}")
    remaining = list(steps)
    done: Set[str] = set()
    layers: List[List[ExecutionStep]] = []
    while remaining:
        ready = [step for step in remaining if all(dep in done for dep in step.dependencies)]
        if not ready:
            raise PlanValidationError(
                "Workflow steps form a dependency cycle: " + ", ".join(step.id for step in remaining)
            )
        layers.append(ready)
        done.update(step.id for step in ready)
        remaining = [step for step in remaining if step.id not in done]
    return layers


def synthesize_workflow_output(results: Sequence[AgentExecutionResult], intent: ParsedIntent) -> Dict[str, Any]:
    successful = [item for item in results if item.status is ExecutionStatus.COMPLETED]
    confidences = [item.confidence or 0.0 for item in results]
    average_confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return {
        "workflowType": intent.primary_action.value,
        "totalSteps": len(results),
        "successfulSteps": len(successful),
        "totalDuration": sum(item.duration_ms or 0.0 for item in results),
        "averageConfidence": average_confidence,
        "results": [
            {
                "agent": item.agent_type.value,
                "step": item.action,
                "status": item.status.value,
                "output": item.result,
                "confidence": item.confidence,
            }
            for item in results
        ],
        "summary": (
            f"Workflow completed: {len(successful)}/{len(results)} steps successful, "
            f"{average_confidence * 100:.0f}% average confidence. "
            f"Primary action: {intent.primary_action.value}"
        ),
    }


@dataclass
class CommandRouter:
    """Route parsed commands to agents with permission and budget gating.

    Active commands are tracked by id until they reach a terminal status,
    after which they move to a bounded history.  ``sleep`` is used between
    step retries and can be replaced to keep backoff out of tests.
    """

    parser: IntentParser
    agents: AgentRegistry
    memory: Optional[MemoryIndex] = None
    budget_monitor: Optional[BudgetMonitor] = None
    oversight: Optional[OversightStore] = None
    telemetry: Telemetry = field(default_factory=Telemetry)
    config: RouterConfig = field(default_factory=RouterConfig)
    clock: Clock = utcnow
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    rules: List[RoutingRule] = field(default_factory=lambda: list(DEFAULT_ROUTING_RULES))
    gatekeeper: Optional[CommandGatekeeper] = None
    _workflows: Dict[str, WorkflowDefinition] = field(default_factory=dict, init=False)
    _active: Dict[str, CommandResult] = field(default_factory=dict, init=False)
    _tasks: Dict[str, asyncio.Future] = field(default_factory=dict, init=False, repr=False)
    _cancelled: Set[str] = field(default_factory=set, init=False, repr=False)
    _history: Deque[CommandResult] = field(default_factory=deque, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.gatekeeper is None:
            self.gatekeeper = CommandGatekeeper(
                budget_impacts=dict(self.config.budget_impacts),
                approval_threshold=self.config.approval_threshold,
            )
        self._history = deque(maxlen=self.config.history_limit)
        self.register_workflow(REPORT_WORKFLOW)

    def _emit(self, event: str, **payload: Any) -> None:
        self.telemetry.emit(f"router.{event}", **payload)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        step_layers(workflow.steps)
        self._workflows[workflow.id] = workflow

    def workflows(self) -> List[WorkflowDefinition]:
        return list(self._workflows.values())

    def add_rule(self, rule: RoutingRule) -> None:
        self.rules.append(rule)

    def _matching_rule(self, intent: ParsedIntent) -> Optional[RoutingRule]:
        matches = [rule for rule in self.rules if rule.condition(intent)]
        if not matches:
            return None
        return max(matches, key=lambda rule: rule.priority)

    def find_best_agent(self, intent: ParsedIntent) -> AgentType:
        rule = self._matching_rule(intent)
        if rule is not None:
            return rule.agent_type
        return ACTION_AGENT_TABLE.get(intent.primary_action, AgentType.INSIGHT)

    def _select_workflow(self, intent: ParsedIntent) -> Optional[Tuple[str, List[ExecutionStep]]]:
        if intent.execution_plan:
            return "parsed_plan", list(intent.execution_plan)
        name = intent.parameters.get("workflow")
        if not name:
            return None
        workflow = self._workflows.get(str(name))
        if workflow is None:
            raise ValueError(f"Unknown workflow: {name}")
        return workflow.id, list(workflow.steps)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    async def process_command(self, command: str, context: ExecutionContext | Mapping[str, Any]) -> CommandResult:
        if not isinstance(context, ExecutionContext):
            context = ExecutionContext.model_validate(context)
        execution_id = f"cmd_{uuid.uuid4().hex[:12]}"
        start = perf_counter()
        result = CommandResult(
            id=execution_id,
            command=command,
            user_id=context.user_id,
            session_id=context.session_id,
            status=ExecutionStatus.PENDING,
            started_at=self.clock(),
        )
        self._active[execution_id] = result
        self._emit("command_received", execution_id=execution_id, user_id=context.user_id)

        try:
            intent = await self.parser.parse(command, context)
            result.intent = intent
            agent_type = self.find_best_agent(intent)

            permission = self.gatekeeper.check_permissions(intent, context.permissions, agent_type)
            if not permission.allowed:
                return await self._finish(
                    execution_id,
                    ExecutionStatus.FAILED,
                    start,
                    error=self._error("PERMISSION_DENIED", f"Permission denied: {permission.reason}"),
                )

            gate = await self._check_budget(intent, context)
            result.budget_impact = gate.budget_impact
            if not gate.allowed:
                result.approval_id = self._request_approval(result, intent, gate, context)
                result.metadata["approval_reason"] = gate.reason
                return await self._finish(execution_id, ExecutionStatus.REQUIRES_APPROVAL, start)

            selected = self._select_workflow(intent)
            result.status = ExecutionStatus.RUNNING
            if selected is not None:
                result.workflow_id = selected[0]
            else:
                result.routed_agent = agent_type
            self._emit(
                "command_running",
                execution_id=execution_id,
                action=intent.primary_action.value,
                agent_type=agent_type.value if selected is None else None,
                workflow_id=result.workflow_id,
            )

            if context.dry_run:
                output = {
                    "dry_run": True,
                    "routed_agent": result.routed_agent.value if result.routed_agent else None,
                    "workflow_id": result.workflow_id,
                    "budget_impact": gate.budget_impact,
                }
                return await self._finish(execution_id, ExecutionStatus.COMPLETED, start, output=output)

            if selected is not None:
                runner = self._run_workflow(execution_id, selected[1], intent, context)
            else:
                runner = self._run_single(execution_id, agent_type, intent, context)
            task = asyncio.ensure_future(runner)
            self._tasks[execution_id] = task
            limit_ms = context.constraints.max_execution_time_ms
            try:
                output = await asyncio.wait_for(task, timeout=limit_ms / 1000.0 if limit_ms else None)
            except asyncio.TimeoutError:
                return await self._finish(
                    execution_id,
                    ExecutionStatus.TIMEOUT,
                    start,
                    error=self._error("EXECUTION_TIMEOUT", f"Command exceeded {limit_ms:g} ms"),
                )
            except asyncio.CancelledError:
                if execution_id in self._cancelled:
                    self._cancelled.discard(execution_id)
                    cancelled = self.get_execution_by_id(execution_id)
                    if cancelled is not None:
                        return cancelled
                raise
            finally:
                self._tasks.pop(execution_id, None)
            return await self._finish(execution_id, ExecutionStatus.COMPLETED, start, output=output)
        except WorkflowStepError as exc:
            return await self._finish(
                execution_id,
                ExecutionStatus.FAILED,
                start,
                error=self._error("EXECUTION_FAILED", str(exc)),
            )
        except Exception as exc:
            return await self._finish(
                execution_id,
                ExecutionStatus.FAILED,
                start,
                error=self._error("EXECUTION_FAILED", str(exc) or type(exc).__name__),
            )

    def _error(self, code: str, message: str) -> ExecutionError:
        return ExecutionError(code=code, message=message, timestamp=self.clock(), severity=Level.HIGH, recoverable=False)

    async def _check_budget(self, intent: ParsedIntent, context: ExecutionContext) -> GateDecision:
        gate = self.gatekeeper.check_constraints(intent, context.constraints)
        if gate.allowed and gate.budget_impact > 0 and self.budget_monitor is not None:
            status = await self.budget_monitor.check_budget_status()
            if not status.can_execute:
                return GateDecision(
                    False,
                    f"Budget utilisation at {status.utilization_percentage:.0f}%; execution needs approval",
                    gate.budget_impact,
                )
        return gate

    def _request_approval(
        self, result: CommandResult, intent: ParsedIntent, gate: GateDecision, context: ExecutionContext
    ) -> Optional[str]:
        if self.oversight is None:
            return None
        request = ApprovalRequest.build(
            execution_id=result.id,
            action=intent.primary_action.value,
            budget_impact=gate.budget_impact,
            reason=gate.reason or "Approval required",
            requested_by=context.user_id,
            context={"command": result.command, "session_id": context.session_id},
        )
        self.oversight.create_approval_request(request)
        return request.id

    async def _finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        start: float,
        *,
        output: Optional[Dict[str, Any]] = None,
        error: Optional[ExecutionError] = None,
    ) -> CommandResult:
        result = self._active.pop(execution_id, None)
        if result is None:
            archived = self.get_execution_by_id(execution_id)
            if archived is None:
                raise KeyError(execution_id)
            return archived
        result.status = status
        result.completed_at = self.clock()
        result.duration_ms = (perf_counter() - start) * 1000.0
        if output is not None:
            result.output = output
        if error is not None:
            result.error = error
        self._history.append(result)
        if status is ExecutionStatus.COMPLETED and result.budget_impact > 0 and self.budget_monitor is not None:
            await self.budget_monitor.track_cost(
                {
                    "execution_id": execution_id,
                    "action": result.intent.primary_action.value if result.intent else None,
                    "amount": result.budget_impact,
                    "user_id": result.user_id,
                }
            )
        self._emit(
            "command_completed",
            execution_id=execution_id,
            status=status.value,
            duration_ms=result.duration_ms,
            agents=len(result.agent_results),
            error=error.message if error else None,
        )
        return result.model_copy(deep=True)

    def _record_step(self, execution_id: str, outcome: AgentExecutionResult) -> None:
        result = self._active.get(execution_id)
        if result is not None and result.status is ExecutionStatus.RUNNING:
            result.agent_results.append(outcome)

    async def _run_single(
        self, execution_id: str, agent_type: AgentType, intent: ParsedIntent, context: ExecutionContext
    ) -> Dict[str, Any]:
        rule = self._matching_rule(intent)
        candidates = [agent_type, *(rule.fallback_agents if rule is not None else ())]
        chosen = next((item for item in candidates if self.agents.for_type(item) is not None), None)
        if chosen is None:
            raise LookupError(f"No suitable agent found for action: {intent.primary_action.value}")
        step = ExecutionStep(
            id=intent.primary_action.value,
            description=f"Route {intent.primary_action.value} to {chosen.value}",
            agent_type=chosen,
            action=intent.primary_action.value,
            parameters=dict(intent.parameters),
        )
        outcome = await self._execute_step(execution_id, step, {}, intent, context)
        self._record_step(execution_id, outcome)
        if outcome.status is not ExecutionStatus.COMPLETED:
            raise WorkflowStepError(step.id, outcome.error.message if outcome.error else "failed", results=[outcome])
        return {"agent": chosen.value, "result": outcome.result, "confidence": outcome.confidence}

    async def _run_workflow(
        self, execution_id: str, steps: Sequence[ExecutionStep], intent: ParsedIntent, context: ExecutionContext
    ) -> Dict[str, Any]:
        workflow_context: Dict[str, Any] = {}
        results: List[AgentExecutionResult] = []
        for layer in step_layers(steps):
            outcomes = await asyncio.gather(
                *(
                    self._execute_step(execution_id, step, {"context": dict(workflow_context)}, intent, context)
                    for step in layer
                )
            )
            for outcome in outcomes:
                results.append(outcome)
                self._record_step(execution_id, outcome)
            failed = [(step, outcome) for step, outcome in zip(layer, outcomes) if outcome.status is not ExecutionStatus.COMPLETED]
            if failed:
                step, outcome = failed[0]
                raise WorkflowStepError(
                    step.id, outcome.error.message if outcome.error else "failed", results=list(results)
                )
            for step, outcome in zip(layer, outcomes):
                workflow_context[step.id] = outcome.result
        return synthesize_workflow_output(results, intent)

    async def _execute_step(
        self,
        execution_id: str,
        step: ExecutionStep,
        inputs: Mapping[str, Any],
        intent: ParsedIntent,
        context: ExecutionContext,
    ) -> AgentExecutionResult:
        """Run one step with its retry policy; never raises for agent failures."""

        started_at = self.clock()
        agent = self.agents.for_type(step.agent_type)
        if agent is None:
            return AgentExecutionResult(
                agent_id=self.agents.agent_id_for(step.agent_type),
                agent_type=step.agent_type,
                action=step.id,
                status=ExecutionStatus.FAILED,
                started_at=started_at,
                completed_at=self.clock(),
                duration_ms=0.0,
                error=ExecutionError(code="AGENT_NOT_FOUND", message=f"Agent not found: {step.agent_type.value}"),
            )

        task = {
            "action": step.action or step.id,
            "step_id": step.id,
            "parameters": {**step.parameters, **inputs},
        }
        agent_context = {
            "execution_id": execution_id,
            "user_id": context.user_id,
            "session_id": context.session_id,
            "organization_id": context.organization_id,
        }
        timeout_s = step.timeout_ms / 1000.0 if step.timeout_ms else self.config.default_step_timeout_s
        policy = step.retry_policy
        last_error = "Step failed"
        clock_start = perf_counter()
        for attempt in range(1, policy.max_attempts + 1):
            try:
                raw = await asyncio.wait_for(agent.execute(task, agent_context), timeout=timeout_s)
                response = coerce_response(raw)
                if not response.success:
                    raise RuntimeError(response.error or "Agent reported failure")
                parsed = parse_agent_result(agent.agent_type, response.data)
            except asyncio.TimeoutError:
                last_error = f"Step {step.id} timed out after {timeout_s:g}s"
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
            else:
                duration_ms = (perf_counter() - clock_start) * 1000.0
                payload = parsed.model_dump()
                confidence = response.confidence if response.confidence is not None else intent.confidence
                memory_id = await self._remember(execution_id, agent.agent_id, step, task, payload, True, duration_ms, context)
                return AgentExecutionResult(
                    agent_id=agent.agent_id,
                    agent_type=step.agent_type,
                    action=step.id,
                    status=ExecutionStatus.COMPLETED,
                    started_at=started_at,
                    completed_at=self.clock(),
                    duration_ms=duration_ms,
                    attempts=attempt,
                    result=payload,
                    confidence=confidence,
                    memory_id=memory_id,
                )
            self._emit(
                "step_attempt_failed",
                level=LogLevel.WARNING,
                execution_id=execution_id,
                step_id=step.id,
                attempt=attempt,
                error=last_error,
            )
            if attempt < policy.max_attempts:
                await self.sleep(policy.delay_seconds(attempt))

        duration_ms = (perf_counter() - clock_start) * 1000.0
        memory_id = await self._remember(
            execution_id, agent.agent_id, step, task, {"error": last_error}, False, duration_ms, context
        )
        return AgentExecutionResult(
            agent_id=agent.agent_id,
            agent_type=step.agent_type,
            action=step.id,
            status=ExecutionStatus.FAILED,
            started_at=started_at,
            completed_at=self.clock(),
            duration_ms=duration_ms,
            attempts=policy.max_attempts,
            error=ExecutionError(
                code="STEP_FAILED",
                message=last_error,
                timestamp=self.clock(),
                severity=Level.HIGH,
                recoverable=True,
            ),
            memory_id=memory_id,
        )

    async def _remember(
        self,
        execution_id: str,
        agent_id: str,
        step: ExecutionStep,
        task: Dict[str, Any],
        output: Dict[str, Any],
        succeeded: bool,
        duration_ms: float,
        context: ExecutionContext,
    ) -> Optional[str]:
        if self.memory is None:
            return None
        return await self.memory.ingest_memory(
            MemoryRecord(
                agent_id=agent_id,
                agent_type=step.agent_type,
                session_id=context.session_id,
                input=task,
                output=output,
                context={"execution_id": execution_id, "user_id": context.user_id},
                outcome=MemoryOutcome.SUCCESS if succeeded else MemoryOutcome.FAILURE,
                performance=MemoryPerformance(execution_time_ms=duration_ms),
                metadata={"command_id": execution_id, "step_id": step.id},
            )
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_active_executions(self) -> List[CommandResult]:
        return [item.model_copy(deep=True) for item in self._active.values()]

    def get_execution_history(self, limit: int = 50) -> List[CommandResult]:
        history = list(self._history)
        if limit > 0:
            history = history[-limit:]
        return [item.model_copy(deep=True) for item in history]

    def get_execution_by_id(self, execution_id: str) -> Optional[CommandResult]:
        active = self._active.get(execution_id)
        if active is not None:
            return active.model_copy(deep=True)
        for item in reversed(self._history):
            if item.id == execution_id:
                return item.model_copy(deep=True)
        return None

    async def cancel_execution(self, execution_id: str) -> bool:
        """Cancel a running command; completed workflow steps are kept."""

        result = self._active.get(execution_id)
        if result is None or result.status is not ExecutionStatus.RUNNING:
            return False
        result.status = ExecutionStatus.CANCELLED
        result.completed_at = self.clock()
        self._active.pop(execution_id, None)
        self._history.append(result)
        task = self._tasks.get(execution_id)
        if task is not None and not task.done():
            self._cancelled.add(execution_id)
            task.cancel()
        self._emit(
            "command_cancelled",
            level=LogLevel.WARNING,
            execution_id=execution_id,
            completed_steps=len(result.agent_results),
        )
        return True

    def get_system_metrics(self) -> Dict[str, Any]:
        recent = list(self._history)[-50:]
        statuses = Counter(item.status.value for item in recent)
        durations = [item.duration_ms or 0.0 for item in recent]
        return {
            "total_executions": len(recent),
            "active_executions": len(self._active),
            "total_agents_invoked": sum(len(item.agent_results) for item in recent),
            "average_execution_time_ms": sum(durations) / len(durations) if durations else 0.0,
            "success_rate": statuses.get(ExecutionStatus.COMPLETED.value, 0) / len(recent) if recent else 0.0,
            "status_counts": dict(statuses),
        }


__all__ = [
    "ACTION_AGENT_TABLE",
    "CommandRouter",
    "DEFAULT_ROUTING_RULES",
    "REPORT_WORKFLOW",
    "RoutingRule",
    "step_layers",
    "synthesize_workflow_output",
]
