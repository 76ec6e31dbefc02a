import time
from dataclasses import dataclass
from enum import Enum

import numpy as np


class ConvergenceReason(Enum):
    MAX_ITERATIONS = 'maximum iterations reached'
    FUNCTION_VALUES_CONVERGED = 'function values converged'
    GRADIENT_CONVERGED = 'gradient converged'
    OBJECTIVE_NOT_IMPROVING = 'objective not improving'


@dataclass(frozen=True, eq=False)
class OptimizerState:
    coefficients: np.ndarray
    iteration: int
    gradient: np.ndarray
    loss: float


class OptimizationStatesTracker:
    """Ordered history of optimizer states with the elapsed time of each."""

    def __init__(self):
        self._start_time = time.time()
        self._states = []
        self._times = []
        self.convergence_reason = None

    def track(self, state):
        self._states.append(state)
        self._times.append(time.time() - self._start_time)

    @property
    def tracked_states(self):
        return list(self._states)

    @property
    def times(self):
        return list(self._times)

    @property
    def converged(self):
        return self.convergence_reason is not None

    def __len__(self):
        return len(self._states)

    def __str__(self):
        lines = [f"Convergence reason: {self.convergence_reason.value if self.converged else 'not converged'}",
                 f"{'Iter':>6} {'Time(s)':>10} {'Loss':>16} {'Gradient norm':>16}"]
        for state, elapsed in zip(self._states, self._times):
            lines.append(f"{state.iteration:>6} {elapsed:>10.3f} {state.loss:>16.8e} "
                         f"{np.linalg.norm(state.gradient):>16.8e}")
        return '\n'.join(lines)
