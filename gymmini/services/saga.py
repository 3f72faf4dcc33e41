# gymmini/services/saga.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from gymmini.utils.logger import get_logger

logger = get_logger(__name__)

Action = Callable[[Dict[str, Any]], Any]
Compensation = Callable[[Any], None]


@dataclass
class Step:
    name: str
    action: Action
    compensate: Optional[Compensation] = None


@dataclass
class Saga:
    """
    Ordered multi-collection write without transactions.

    Each step's action receives the results of the steps before it (by name).
    When a step raises, the completed steps are compensated in reverse order and
    the original exception is re-raised. A failing compensation is logged and
    the remaining ones still run.
    """
    name: str
    steps: List[Step] = field(default_factory=list)

    def add(self, name: str, action: Action, compensate: Optional[Compensation] = None) -> "Saga":
        self.steps.append(Step(name, action, compensate))
        return self

    def run(self) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        done: List[Step] = []
        for step in self.steps:
            try:
                results[step.name] = step.action(results)
            except Exception:
                logger.warning("saga %s failed at step %s; compensating %d step(s)",
                               self.name, step.name, len(done))
                self._compensate(done, results)
                raise
            done.append(step)
        return results

    def _compensate(self, done: List[Step], results: Dict[str, Any]) -> None:
        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                step.compensate(results.get(step.name))
            except Exception:
                logger.error("saga %s: compensation for %s failed", self.name, step.name, exc_info=True)
