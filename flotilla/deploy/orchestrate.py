"""Deploy orchestration: checks, then plan steps with readiness gating."""

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from flotilla.checks import CheckCoordinator
from flotilla.config import DaemonConfig
from flotilla.definitions.loader import DefinitionSet
from flotilla.definitions.types import Group, Service, Task
from flotilla.deploy.params import DeployRequest
from flotilla.environment import compose_environment
from flotilla.errors import FlotillaError, SpawnFailed, TaskFailed, TaskTimeout
from flotilla.ledger import LIVENESS_FAILING, RUNNING, Ledger
from flotilla.planner.plan import DeploymentPlan, PlanStep, build_plan
from flotilla.probes.readiness import await_readiness
from flotilla.supervisor.manager import Supervisor, fingerprint

logger = logging.getLogger(__name__)

WILL_DEPLOY = "deploy"
WILL_REDEPLOY = "redeploy"
ALREADY_DEPLOYED = "already deployed"


@dataclass
class DeployOutcome:
    """Result of one deploy invocation."""

    plan: DeploymentPlan | None = None
    errors: list[FlotillaError] = field(default_factory=list)
    check_executions: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class Deployer:
    """Executes deploy requests against one supervisor and ledger."""

    def __init__(self, supervisor: Supervisor, ledger: Ledger, config: DaemonConfig):
        self.supervisor = supervisor
        self.ledger = ledger
        self.config = config

    def planned_action(self, service: Service, request: DeployRequest) -> str:
        """Decide whether a service needs a (re)deploy."""
        record = self.ledger.get(service.name)
        if record is None or record.status != RUNNING:
            return WILL_DEPLOY
        if request.force or not record.succeeded or record.liveness == LIVENESS_FAILING:
            return WILL_REDEPLOY
        environment = self._environment(service, request)
        if record.fingerprint != fingerprint(service, environment, self.supervisor.log_path_for(service)):
            return WILL_REDEPLOY
        return ALREADY_DEPLOYED

    async def deploy(self, definitions: DefinitionSet, request: DeployRequest, emit: Callable[[str], None]) -> DeployOutcome:
        """Resolve, check and deploy.

        Resolution errors and check failures abort before any process
        starts. Step failures stop their dependents only; the outcome lists
        every error.
        """
        outcome = DeployOutcome()
        coordinator = CheckCoordinator(emit, apply_fixes=request.apply_fixes)
        try:
            emit("Resolving dependencies...")
            outcome.plan = build_plan(definitions, request.names, only_selected=request.only_selected)

            if request.skip_checks or not outcome.plan.checks:
                emit("Running checks... (Skip)")
            else:
                emit("Running checks...")
                await coordinator.run_all(outcome.plan.checks)
        except FlotillaError as e:
            logger.error(f"Deploy of {request.names} aborted: {e.message}")
            outcome.errors.append(e)
            return outcome
        finally:
            outcome.check_executions = dict(coordinator.executions)

        emit("Deploying...")
        outcome.errors.extend(await self._execute(outcome.plan, request, emit))
        if outcome.ok:
            emit(f"Deployed modules: {json.dumps(request.names)}")
        return outcome

    async def _execute(self, plan: DeploymentPlan, request: DeployRequest, emit) -> list[FlotillaError]:
        actions = {
            step.name: self.planned_action(step.entity, request)
            for step in plan.steps
            if isinstance(step.entity, Service)
        }
        finished = [asyncio.Event() for _ in plan.steps]
        failed: set[int] = set()
        errors: list[FlotillaError] = []

        async def run_step(step: PlanStep) -> None:
            try:
                for pos in step.requires:
                    await finished[pos].wait()
                blocked = [plan.steps[pos].name for pos in step.requires if pos in failed]
                if blocked:
                    logger.info(f"Not starting {step.name}: {', '.join(blocked)} failed")
                    failed.add(step.index)
                    return
                try:
                    await self._run_step(step, request, actions, emit)
                except FlotillaError as e:
                    logger.error(f"{step.kind} {step.name} failed: {e.message}")
                    failed.add(step.index)
                    errors.append(e)
            finally:
                finished[step.index].set()

        if request.serial:
            for step in plan.steps:
                await run_step(step)
        else:
            await asyncio.gather(*(run_step(step) for step in plan.steps))
        return errors

    async def _run_step(self, step: PlanStep, request: DeployRequest, actions: dict[str, str], emit) -> None:
        entity = step.entity
        if isinstance(entity, Group):
            emit(f"Group {entity.name} (Done)")
        elif isinstance(entity, Service):
            await self._deploy_service(step, entity, request, actions[entity.name], emit)
        elif isinstance(entity, Task):
            await self._run_task(step, entity, request, actions, emit)

    def _environment(self, entity: Service | Task, request: DeployRequest) -> dict[str, str]:
        return compose_environment(entity.process.environment, entity.process.environment_sets, request.environment_sets)

    async def _deploy_service(self, step: PlanStep, service: Service, request: DeployRequest, action: str, emit) -> None:
        if action == ALREADY_DEPLOYED:
            emit(f"Deploying {service.name} (Already deployed)")
            return
        if action == WILL_REDEPLOY:
            logger.info(f"Redeploying {service.name}")
            await self.supervisor.stop(service.name)

        environment = self._environment(service, request)
        try:
            record = await self.supervisor.start(service, environment)
        except SpawnFailed:
            emit(f"Deploying {service.name} (Failed)")
            raise
        emit(f"Deploying {service.name} (Deployed)")

        probe = service.readiness_probe
        must_wait = step.await_readiness or service.always_await_readiness_probe or request.wait
        if probe is not None and must_wait and not request.skip_readiness:
            emit(f"Waiting {service.name} to be healthy")
            ctx = self.supervisor.probe_context(service.name, record.log_file_path, environment)
            try:
                await await_readiness(probe, ctx, self.config.readiness_interval)
            except FlotillaError:
                emit(f"Waiting {service.name} to be healthy (Failed)")
                raise
            emit(f"Waiting {service.name} to be healthy (Done)")
        self.ledger.mark_succeeded(service.name, record.pid)

    def _should_skip_task(self, step: PlanStep, request: DeployRequest, actions: dict[str, str]) -> bool:
        if request.force:
            return False
        record = self.ledger.get(step.name)
        if record is None or record.kind != Task.kind or not record.succeeded:
            return False
        return not any(actions.get(trigger, ALREADY_DEPLOYED) != ALREADY_DEPLOYED for trigger in step.triggers)

    async def _run_task(self, step: PlanStep, task: Task, request: DeployRequest, actions: dict[str, str], emit) -> None:
        if self._should_skip_task(step, request, actions):
            emit(f"Running task {task.name} (Skipping)")
            return

        try:
            record = await self.supervisor.start(task, self._environment(task, request))
        except SpawnFailed:
            emit(f"Running task {task.name} (Failed)")
            raise
        supervised = self.ledger.process_of(task.name)
        try:
            code = await self.supervisor.wait_for_exit(task.name, supervised, timeout=task.timeout)
        except TimeoutError:
            # the process is left running
            emit(f"Running task {task.name} (Failed)")
            raise TaskTimeout(task.name) from None
        if code != 0:
            emit(f"Running task {task.name} (Failed)")
            raise TaskFailed(task.name, code)
        self.ledger.mark_succeeded(task.name, record.pid)
        emit(f"Running task {task.name} (Done)")
