from collections import deque

import numpy as np
from loguru import logger

from states import ConvergenceReason, OptimizationStatesTracker, OptimizerState

ARMIJO_CONSTANT = 1e-4
BACKTRACKING_FACTOR = 0.5
MAX_LINE_SEARCH_STEPS = 30


class NonFiniteObjectiveError(FloatingPointError):
    pass


def check_finite(name, *values):
    for value in values:
        if not np.all(np.isfinite(value)):
            logger.error(f"Non-finite {name} encountered")
            raise NonFiniteObjectiveError(f"Non-finite {name}: the objective is misconfigured or diverging")


class Optimizer:
    """
    Iterative minimizer of an ObjectiveFunction over a PartitionedDataset.

    Stops when the relative change of the objective value or the gradient norm
    (relative to the initial one) drops below `tolerance`, when no acceptable
    step exists, or after `maximum_iterations` iterations.
    """
    supports_l1_regularization = False
    requires_twice_differentiable = False

    def __init__(self, tolerance=1e-7, maximum_iterations=100, is_tracking_state=True):
        if tolerance <= 0:
            raise ValueError(f"Tolerance must be positive, got {tolerance}")
        if maximum_iterations < 1:
            raise ValueError(f"Maximum iterations must be >= 1, got {maximum_iterations}")
        self.tolerance = tolerance
        self.maximum_iterations = maximum_iterations
        self.is_tracking_state = is_tracking_state
        self._state_tracker = None

    @property
    def state_tracker(self):
        return self._state_tracker

    def _calculate(self, objective, data, coefficients):
        value, gradient = objective.calculate(data, coefficients)
        check_finite('objective value', value)
        check_finite('gradient', gradient)
        return value, gradient

    def _init_state(self, objective, coefficients, data):
        raise NotImplementedError

    def _run_one_iteration(self, objective, state, data):
        """Returns the next state, or `state` itself when no step is acceptable."""
        raise NotImplementedError

    def _convergence_reason(self, state, previous_state, initial_gradient_norm):
        gradient_norm = np.linalg.norm(state.gradient)
        if previous_state is None:
            return ConvergenceReason.GRADIENT_CONVERGED if gradient_norm == 0.0 else None
        if state.iteration >= self.maximum_iterations:
            return ConvergenceReason.MAX_ITERATIONS
        if state.iteration == previous_state.iteration:
            return ConvergenceReason.OBJECTIVE_NOT_IMPROVING
        if abs(state.loss - previous_state.loss) <= self.tolerance * abs(previous_state.loss):
            return ConvergenceReason.FUNCTION_VALUES_CONVERGED
        if gradient_norm <= self.tolerance * initial_gradient_norm:
            return ConvergenceReason.GRADIENT_CONVERGED
        return None

    def optimize(self, objective, initial_coefficients, data):
        name = type(self).__name__
        tracker = OptimizationStatesTracker() if self.is_tracking_state else None
        coefficients = np.array(initial_coefficients, dtype=float)

        state = self._init_state(objective, coefficients, data)
        if tracker is not None:
            tracker.track(state)
        initial_gradient_norm = np.linalg.norm(state.gradient)
        reason = self._convergence_reason(state, None, initial_gradient_norm)

        while reason is None:
            previous_state = state
            state = self._run_one_iteration(objective, state, data)
            if tracker is not None and state is not previous_state:
                tracker.track(state)
            logger.debug(f"{name} iteration {state.iteration}: loss={state.loss:.10g}, "
                         f"|g|={np.linalg.norm(state.gradient):.6g}")
            reason = self._convergence_reason(state, previous_state, initial_gradient_norm)

        if tracker is not None:
            tracker.convergence_reason = reason
        self._state_tracker = tracker
        logger.info(f"{name} finished after {state.iteration} iterations ({reason.value}), loss={state.loss:.10g}")
        return state.coefficients, tracker


class LBFGS(Optimizer):
    """Limited-memory BFGS with a backtracking Armijo line search."""

    def __init__(self, tolerance=1e-7, maximum_iterations=100, num_corrections=10, is_tracking_state=True):
        super().__init__(tolerance, maximum_iterations, is_tracking_state)
        if num_corrections < 1:
            raise ValueError(f"Number of corrections must be >= 1, got {num_corrections}")
        self.num_corrections = num_corrections
        self._corrections = deque(maxlen=num_corrections)

    def _init_state(self, objective, coefficients, data):
        self._corrections = deque(maxlen=self.num_corrections)
        value, gradient = self._calculate(objective, data, coefficients)
        return OptimizerState(coefficients, 0, gradient, value)

    def _inverse_hessian_product(self, vector):
        # Two-loop recursion
        q = vector.copy()
        alphas = []
        for s, y, rho in reversed(self._corrections):
            alpha = rho * (s @ q)
            q -= alpha * y
            alphas.append(alpha)
        if self._corrections:
            s, y, _ = self._corrections[-1]
            q *= (s @ y) / (y @ y)
        for (s, y, rho), alpha in zip(self._corrections, reversed(alphas)):
            beta = rho * (y @ q)
            q += (alpha - beta) * s
        return q

    def _update_corrections(self, s, y):
        curvature = s @ y
        # Pairs without positive curvature would break the positive definiteness of the update
        if curvature > 1e-10 * (y @ y):
            self._corrections.append((s, y, 1.0 / curvature))

    def _regularized_loss(self, value, coefficients):
        return value

    def _line_search(self, objective, data, state, direction, orthant=None):
        step = 1.0 if self._corrections else min(1.0, 1.0 / np.linalg.norm(direction))
        for _ in range(MAX_LINE_SEARCH_STEPS):
            candidate = state.coefficients + step * direction
            if orthant is not None:
                candidate[np.sign(candidate) != orthant] = 0.0
            value, gradient = self._calculate(objective, data, candidate)
            loss = self._regularized_loss(value, candidate)
            if loss <= state.loss + ARMIJO_CONSTANT * (state.gradient @ (candidate - state.coefficients)):
                return candidate, gradient, loss
            step *= BACKTRACKING_FACTOR
        return None

    def _run_one_iteration(self, objective, state, data):
        direction = -self._inverse_hessian_product(state.gradient)
        if direction @ state.gradient >= 0:
            self._corrections.clear()
            direction = -state.gradient

        result = self._line_search(objective, data, state, direction)
        if result is None:
            return state
        coefficients, gradient, loss = result
        self._update_corrections(coefficients - state.coefficients, gradient - state.gradient)
        return OptimizerState(coefficients, state.iteration + 1, gradient, loss)


class OWLQN(LBFGS):
    """
    Orthant-wise limited-memory quasi-Newton for objectives with an added
    l1 * ||w||_1 penalty. The tracked gradient is the pseudo-gradient and the
    tracked loss includes the penalty.
    """
    supports_l1_regularization = True

    def __init__(self, l1_regularization_weight, tolerance=1e-7, maximum_iterations=100, num_corrections=10,
                 is_tracking_state=True):
        super().__init__(tolerance, maximum_iterations, num_corrections, is_tracking_state)
        self.l1_regularization_weight = l1_regularization_weight
        self._smooth_gradient = None

    @property
    def l1_regularization_weight(self):
        return self._l1_regularization_weight

    @l1_regularization_weight.setter
    def l1_regularization_weight(self, weight):
        if weight < 0:
            raise ValueError(f"L1 regularization weight must be non-negative, got {weight}")
        self._l1_regularization_weight = float(weight)

    def _regularized_loss(self, value, coefficients):
        return value + self._l1_regularization_weight * np.abs(coefficients).sum()

    def _pseudo_gradient(self, coefficients, gradient):
        l1 = self._l1_regularization_weight
        right = gradient + l1
        left = gradient - l1
        at_zero = np.where(right < 0.0, right, np.where(left > 0.0, left, 0.0))
        return np.where(coefficients > 0.0, right, np.where(coefficients < 0.0, left, at_zero))

    def _init_state(self, objective, coefficients, data):
        self._corrections = deque(maxlen=self.num_corrections)
        value, gradient = self._calculate(objective, data, coefficients)
        self._smooth_gradient = gradient
        return OptimizerState(coefficients, 0, self._pseudo_gradient(coefficients, gradient),
                              self._regularized_loss(value, coefficients))

    def _run_one_iteration(self, objective, state, data):
        pseudo_gradient = state.gradient
        direction = -self._inverse_hessian_product(pseudo_gradient)
        # Keep only the components that descend along the pseudo-gradient
        direction[direction * pseudo_gradient >= 0.0] = 0.0
        if direction @ pseudo_gradient >= 0:
            self._corrections.clear()
            direction = -pseudo_gradient

        coefficients = state.coefficients
        orthant = np.where(coefficients != 0.0, np.sign(coefficients), np.sign(-pseudo_gradient))
        result = self._line_search(objective, data, state, direction, orthant)
        if result is None:
            return state
        candidate, gradient, loss = result
        self._update_corrections(candidate - coefficients, gradient - self._smooth_gradient)
        self._smooth_gradient = gradient
        return OptimizerState(candidate, state.iteration + 1, self._pseudo_gradient(candidate, gradient), loss)


class TRON(Optimizer):
    """
    Trust-region Newton method. Each step approximately solves the Newton
    system with conjugate gradient on Hessian-vector products, truncated at
    the trust-region boundary.
    """
    requires_twice_differentiable = True

    ETA0, ETA1, ETA2 = 1e-4, 0.25, 0.75
    SIGMA1, SIGMA2, SIGMA3 = 0.25, 0.5, 4.0
    CG_TOLERANCE = 0.1

    def __init__(self, tolerance=1e-7, maximum_iterations=100, max_cg_iterations=20, max_improvement_failures=5,
                 is_tracking_state=True):
        super().__init__(tolerance, maximum_iterations, is_tracking_state)
        if max_cg_iterations < 1:
            raise ValueError(f"Maximum CG iterations must be >= 1, got {max_cg_iterations}")
        if max_improvement_failures < 1:
            raise ValueError(f"Maximum improvement failures must be >= 1, got {max_improvement_failures}")
        self.max_cg_iterations = max_cg_iterations
        self.max_improvement_failures = max_improvement_failures
        self._delta = None
        self._first_step = True

    def _init_state(self, objective, coefficients, data):
        value, gradient = self._calculate(objective, data, coefficients)
        self._delta = np.linalg.norm(gradient)
        self._first_step = True
        return OptimizerState(coefficients, 0, gradient, value)

    def _truncated_cg(self, objective, data, coefficients, gradient):
        delta = self._delta
        step = np.zeros_like(gradient)
        residual = -gradient
        direction = residual.copy()
        residual_norm_sq = residual @ residual
        cg_tolerance = self.CG_TOLERANCE * np.linalg.norm(gradient)

        for _ in range(self.max_cg_iterations):
            if np.sqrt(residual_norm_sq) <= cg_tolerance:
                break
            hd = objective.hessian_vector(data, coefficients, direction)
            check_finite('Hessian-vector product', hd)
            curvature = direction @ hd
            alpha = residual_norm_sq / curvature if curvature > 0 else None
            if alpha is None or np.linalg.norm(step + alpha * direction) > delta:
                # Move to the trust-region boundary along the current direction
                std = step @ direction
                sts = step @ step
                dtd = direction @ direction
                dsq = delta * delta
                rad = np.sqrt(std * std + dtd * (dsq - sts))
                alpha = (dsq - sts) / (std + rad) if std >= 0 else (rad - std) / dtd
                step = step + alpha * direction
                residual = residual - alpha * hd
                break
            step = step + alpha * direction
            residual = residual - alpha * hd
            new_residual_norm_sq = residual @ residual
            direction = residual + (new_residual_norm_sq / residual_norm_sq) * direction
            residual_norm_sq = new_residual_norm_sq
        return step, residual

    def _update_delta(self, actual, predicted, alpha, step_norm):
        delta = self._delta
        if actual < self.ETA0 * predicted:
            delta = min(max(alpha, self.SIGMA1) * step_norm, self.SIGMA2 * delta)
        elif actual < self.ETA1 * predicted:
            delta = max(self.SIGMA1 * delta, min(alpha * step_norm, self.SIGMA2 * delta))
        elif actual < self.ETA2 * predicted:
            delta = max(self.SIGMA1 * delta, min(alpha * step_norm, self.SIGMA3 * delta))
        else:
            delta = max(delta, min(alpha * step_norm, self.SIGMA3 * delta))
        self._delta = delta

    def _run_one_iteration(self, objective, state, data):
        coefficients, loss, gradient = state.coefficients, state.loss, state.gradient
        for _ in range(self.max_improvement_failures):
            step, residual = self._truncated_cg(objective, data, coefficients, gradient)
            candidate = coefficients + step
            gs = gradient @ step
            predicted = -0.5 * (gs - step @ residual)
            new_loss, new_gradient = self._calculate(objective, data, candidate)
            actual = loss - new_loss

            step_norm = np.linalg.norm(step)
            if self._first_step:
                self._delta = min(self._delta, step_norm)
                self._first_step = False
            if new_loss - loss - gs <= 0:
                alpha = self.SIGMA3
            else:
                alpha = max(self.SIGMA1, -0.5 * (gs / (new_loss - loss - gs)))
            self._update_delta(actual, predicted, alpha, step_norm)

            if actual > self.ETA0 * predicted:
                return OptimizerState(candidate, state.iteration + 1, new_gradient, new_loss)
            logger.debug(f"TRON step rejected, shrinking trust region to {self._delta:.6g}")
        return state
