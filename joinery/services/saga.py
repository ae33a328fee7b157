"""
Saga runner for multi-table lifecycle operations.

The backing store commits each call on its own, so an operation that spans
several tables is written as a sequence of steps:

    saga = Saga("convert", tenant_id=principal.tenant_id)
    project = saga.step("insert_project", lambda: ..., compensate=lambda p: ...)
    saga.best_effort("scaffold_phases", lambda: ...)
    saga.step("reassign_files", lambda: ..., compensate=lambda moved: ...)

step()         required; on failure, every compensation recorded so far runs
               in reverse order and the original error is re-raised with
               failed_step / completed_steps / compensated /
               compensation_failures merged into its details.
best_effort()  optional; on failure a StepWarning is recorded and logged and
               the saga continues.
"""

import logging
from dataclasses import asdict, dataclass

from joinery.core.exceptions import ApiError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class StepWarning:
    step: str
    code: str
    message: str

    def to_dict(self):
        return asdict(self)


class Saga:
    def __init__(self, name: str, tenant_id=None):
        self.name = name
        self.tenant_id = tenant_id
        self.completed: list[str] = []
        self.warnings: list[StepWarning] = []
        self._compensations = []

    def _log_extra(self, step):
        return {"tenant_id": self.tenant_id, "event_type": f"saga_{self.name}", "step": step}

    def step(self, name, action, compensate=None):
        """Run a required step. ``compensate`` receives the step's result."""
        try:
            result = action()
        except Exception as exc:
            self._fail(name, exc)
            raise
        self.completed.append(name)
        if compensate is not None:
            self._compensations.append((name, compensate, result))
        return result

    def best_effort(self, name, action, default=None):
        """Run an optional step; failures become warnings."""
        try:
            result = action()
        except ApiError as exc:
            self._warn(name, exc.code, exc.message)
            return default
        except Exception as exc:
            self._warn(name, UpstreamError.code, str(exc) or exc.__class__.__name__)
            return default
        self.completed.append(name)
        return result

    def _warn(self, step, code, message):
        logger.warning(
            "%s: best-effort step %s failed: %s", self.name, step, message,
            extra=self._log_extra(step),
        )
        self.warnings.append(StepWarning(step=step, code=code, message=message))

    def _fail(self, failed_step, exc):
        compensated, failures = [], []
        for name, compensate, result in reversed(self._compensations):
            try:
                compensate(result)
                compensated.append(name)
                logger.warning(
                    "%s: compensated step %s after %s failed", self.name, name, failed_step,
                    extra=self._log_extra(name),
                )
            except Exception as comp_exc:
                failures.append({"step": name, "message": str(comp_exc)})
                logger.error(
                    "%s: compensation for %s failed: %s", self.name, name, comp_exc,
                    extra=self._log_extra(name),
                )
        self._compensations.clear()

        report = {
            "operation": self.name,
            "failed_step": failed_step,
            "completed_steps": list(self.completed),
            "compensated": compensated,
            "compensation_failures": failures,
        }
        if isinstance(exc, ApiError):
            exc.details = {**exc.details, **report}
        else:
            exc.saga_report = report
        logger.warning(
            "%s: step %s failed: %s", self.name, failed_step, exc,
            extra=self._log_extra(failed_step),
        )
