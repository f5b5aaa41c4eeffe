# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Fan-out of independent store writes with per-item outcome tracking.

The document store has no cross-document transactions, so multi-document
operations such as the team-deletion cascade run as a saga: every step is
attempted, failures are recorded against their key, and the caller gets a
result describing exactly which steps completed.
"""

import concurrent.futures
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class SagaState(StrEnum):
    EMPTY = "empty"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class StepOutcome:
    key: str
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SagaResult:
    name: str
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [outcome.key for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> List[str]:
        return [outcome.key for outcome in self.outcomes if not outcome.ok]

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def state(self) -> SagaState:
        if not self.outcomes:
            return SagaState.EMPTY
        if not self.failed:
            return SagaState.COMPLETE
        if not self.succeeded:
            return SagaState.FAILED
        return SagaState.PARTIAL

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "succeeded": self.succeeded,
            "failed": {
                outcome.key: str(outcome.error)
                for outcome in self.outcomes
                if not outcome.ok
            },
        }


def run_saga(
    name: str,
    steps: Iterable[tuple[str, Callable[[], None]]],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> SagaResult:
    """
    Runs every step concurrently and waits for all of them.

    Args:
        name: A label used in logs and in the result.
        steps: (key, callable) pairs. Each callable performs one independent write.
        max_workers: Thread pool size.

    Returns:
        SagaResult with one outcome per step, in the order the steps were given.
    """
    steps = list(steps)
    if not steps:
        return SagaResult(name=name)

    outcomes: List[StepOutcome] = []
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(steps)))
    ) as executor:
        futures = [(key, executor.submit(step)) for key, step in steps]
        for key, future in futures:
            try:
                future.result()
                outcomes.append(StepOutcome(key=key))
            except Exception as e:
                logger.error("%s: step %s failed: %s", name, key, e)
                outcomes.append(StepOutcome(key=key, error=e))

    result = SagaResult(name=name, outcomes=outcomes)
    logger.info(
        "%s finished %s (%d succeeded, %d failed)",
        name,
        result.state.value,
        result.success_count,
        result.failure_count,
    )
    return result
