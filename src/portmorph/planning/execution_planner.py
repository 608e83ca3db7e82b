"""
Execution planning for a porting run.

The plan is advisory: it names the phases of a run, estimates how long they
take and defines the checkpoints written as phases finish. It never gates
what the orchestrator does.
"""

from pydantic import BaseModel, Field

from portmorph.config.models import Complexity, TaskUnderstanding

COMPLEXITY_MULTIPLIERS = {
    Complexity.LOW: 0.8,
    Complexity.MEDIUM: 1.0,
    Complexity.HIGH: 1.5,
}


class PlanTask(BaseModel):
    """A unit of work within a phase."""

    id: str
    type: str = Field(description="analyze, port or verify")
    description: str
    files: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)


class PlanPhase(BaseModel):
    """A phase of the run and the phases it depends on."""

    number: int
    name: str
    description: str
    tasks: list[PlanTask] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list)
    optional: bool = False
    estimated_duration: int = Field(default=0, description="Seconds")


class PlanCheckpoint(BaseModel):
    """A point at which the session is snapshotted."""

    id: str
    phase: int
    phase_name: str
    total_tasks: int = 0


class ExecutionPlan(BaseModel):
    phases: list[PlanPhase] = Field(default_factory=list)
    total_tasks: int = 0
    estimated_duration: int = Field(default=0, description="Seconds")
    strategy: str = ""
    checkpoints: list[PlanCheckpoint] = Field(default_factory=list)

    def checkpoint_for(self, phase_number: int) -> PlanCheckpoint | None:
        return next((c for c in self.checkpoints if c.phase == phase_number), None)


class ExecutionPlanner:
    """
    Builds and validates execution plans.

    Usage:
        planner = ExecutionPlanner()
        plan = planner.create_plan(understanding, files)
        issues = planner.validate_plan(plan)
    """

    def __init__(self, enable_checkpoints: bool = True):
        self.enable_checkpoints = enable_checkpoints

    def create_plan(self, understanding: TaskUnderstanding, files: list[str], source_root: str = ".") -> ExecutionPlan:
        """
        Create the three-phase plan for a run.

        Args:
            understanding: Task understanding; its complexity scales the estimates
            files: Source files to port, in porting order
            source_root: Source directory analysed by the first phase

        Returns:
            ExecutionPlan with estimates in seconds
        """
        phases = [
            PlanPhase(
                number=1,
                name="Analysis",
                description="Analyze project structure, exports and imports",
                tasks=[
                    PlanTask(
                        id="analyze-1",
                        type="analyze",
                        description="Analyze project structure and dependencies",
                        files=[source_root],
                    )
                ],
                estimated_duration=30,
            ),
            PlanPhase(
                number=2,
                name="Porting",
                description=f"Port {len(files)} files in dependency order",
                tasks=[
                    PlanTask(
                        id="port-1",
                        type="port",
                        description="Port all source files",
                        files=list(files),
                        dependencies=["analyze-1"],
                    )
                ],
                dependencies=[1],
                estimated_duration=300,
            ),
            PlanPhase(
                number=3,
                name="Verification",
                description="Verify ported files for syntax and quality",
                tasks=[
                    PlanTask(
                        id="verify-1",
                        type="verify",
                        description="Verify all ported files",
                        dependencies=["port-1"],
                    )
                ],
                dependencies=[2],
                estimated_duration=60,
            ),
        ]

        multiplier = COMPLEXITY_MULTIPLIERS.get(understanding.complexity, 1.0)
        for phase in phases:
            phase.estimated_duration = round(phase.estimated_duration * multiplier)

        checkpoints = []
        if self.enable_checkpoints:
            checkpoints = [
                PlanCheckpoint(
                    id=f"checkpoint-{phase.number}",
                    phase=phase.number,
                    phase_name=phase.name,
                    total_tasks=len(phase.tasks),
                )
                for phase in phases
            ]

        return ExecutionPlan(
            phases=phases,
            total_tasks=sum(len(phase.tasks) for phase in phases),
            estimated_duration=sum(phase.estimated_duration for phase in phases),
            strategy=understanding.recommended_strategy,
            checkpoints=checkpoints,
        )

    def validate_plan(self, plan: ExecutionPlan) -> list[str]:
        """
        Check a plan for consistency.

        Returns:
            Issues found (circular phase dependencies, dependencies on tasks
            that do not exist); empty when the plan is valid
        """
        issues = []
        by_number = {phase.number: phase for phase in plan.phases}
        for phase in plan.phases:
            for dependency in phase.dependencies:
                other = by_number.get(dependency)
                if other is not None and phase.number in other.dependencies:
                    issues.append(f"Circular dependency between phase {phase.number} and {dependency}")

        task_ids = {task.id for phase in plan.phases for task in phase.tasks}
        for phase in plan.phases:
            for task in phase.tasks:
                for dependency in task.dependencies:
                    if dependency and dependency not in task_ids:
                        issues.append(f"Task {task.id} depends on non-existent task {dependency}")
        return issues

    def summary(self, plan: ExecutionPlan) -> str:
        """Text summary of a plan for display."""
        lines = [
            "Execution Plan Summary",
            f"Strategy: {plan.strategy}",
            f"Total Phases: {len(plan.phases)}",
            f"Total Tasks: {plan.total_tasks}",
            f"Estimated Duration: {round(plan.estimated_duration / 60)}m",
            "",
            "Phases:",
        ]
        for phase in plan.phases:
            lines.append(f"  {phase.number}. {phase.name} ({len(phase.tasks)} tasks)")
        return "\n".join(lines)
