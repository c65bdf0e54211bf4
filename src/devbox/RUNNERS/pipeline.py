"""
Fail-fast driver that runs provisioning steps in order.
"""
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict

from ..errors import ProvisionError
from ..MODELS.steps import Step


class StepStatus(str, Enum):
    """
    Outcome of a single step.
    """
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    PLANNED = "planned"


class StepResult(BaseModel):
    """
    Result of running one step.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    step: Step
    status: StepStatus
    detail: str = ""
    error: Optional[ProvisionError] = None

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.FAILED


class PipelineReport(BaseModel):
    """
    Results of every step that was attempted, in order.
    """
    results: List[StepResult] = []

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> Optional[StepResult]:
        return next((r for r in self.results if not r.ok), None)

    def statuses(self) -> List[str]:
        return [f"{r.step.name}:{r.status.value}" for r in self.results]


class StepExecutor(Protocol):
    """
    Something that can carry out a step and report how it went.
    """
    def execute(self, step: Step) -> StepResult: ...


class Pipeline:
    """
    Runs steps one after the other and stops at the first failure.
    There is no retry and no rollback: a failed run has to be started over.
    """
    def __init__(self, steps: Sequence[Step], executor: StepExecutor):
        """
        :param steps: The ordered steps of a plan.
        :param executor: Executes individual steps.
        """
        self.steps = list(steps)
        self.executor = executor

    def run(self, dry_run: bool = False) -> PipelineReport:
        """
        Executes the steps.

        :param dry_run: Record every step as planned without executing anything.
        :return: The report of all steps.
        :raises ProvisionError: The first step failure, unchanged, with the
            report attached as ``error.report``.
        """
        report = PipelineReport()
        for step in self.steps:
            if dry_run:
                report.results.append(StepResult(step=step, status=StepStatus.PLANNED,
                                                 detail=step.describe()))
                continue
            try:
                result = self.executor.execute(step)
            except ProvisionError as e:
                if e.step is None:
                    e.step = step.name
                report.results.append(StepResult(step=step, status=StepStatus.FAILED,
                                                 detail=str(e), error=e))
                e.report = report
                print(f"[{step.name}] failed: {e}")
                raise
            report.results.append(result)
            print(f"[{step.name}] {result.status.value}{': ' + result.detail if result.detail else ''}")
        return report
