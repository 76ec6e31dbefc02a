from collections.abc import Sequence

import numpy as np
from loguru import logger
from scipy.linalg import pinvh

from config import OptimizerType, TaskType
from losses import LOGISTIC_LOSS, POISSON_LOSS, SQUARED_LOSS
from model import (Coefficients, LinearRegressionModel, LogisticRegressionModel, PoissonRegressionModel,
                   SmoothedHingeLossLinearSVMModel)
from obj_problems import DistributedGLMLossFunction, DistributedSmoothedHingeLossFunction
from optimizers import LBFGS, OWLQN, TRON, check_finite
from sampler import BinaryClassificationDownSampler, DefaultDownSampler


class ModelTracker(Sequence):
    """One model per tracked optimizer state, built on access."""

    def __init__(self, states, glm_constructor):
        self._states = list(states)
        self._glm_constructor = glm_constructor

    def __len__(self):
        return len(self._states)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return ModelTracker(self._states[index], self._glm_constructor)
        return self._glm_constructor(Coefficients(self._states[index].coefficients))


class DistributedOptimizationProblem:
    """
    Binds an optimizer, a distributed objective function, a regularization
    context and a model constructor into one trainable problem.

    Args:
        optimizer: Optimizer used by `run`.
        objective_function: ObjectiveFunction evaluated over the training data.
        sampler: optional DownSampler applied to the data before each run.
        glm_constructor: callable building a model from Coefficients.
        regularization_context: how a total regularization weight is split
            between the optimizer (L1) and the objective function (L2).
        is_computing_variances: attach coefficient variances to the model
            returned by `run`.
    """

    def __init__(self, optimizer, objective_function, sampler, glm_constructor, regularization_context,
                 is_computing_variances=False):
        if regularization_context.has_l1 and not optimizer.supports_l1_regularization:
            raise ValueError(f"{regularization_context} regularization needs an optimizer that handles L1, "
                             f"got {type(optimizer).__name__}")
        if regularization_context.has_l2 and not objective_function.supports_l2_regularization:
            raise ValueError(f"{regularization_context} regularization needs an objective with an L2 term, "
                             f"got {type(objective_function).__name__}")
        if optimizer.requires_twice_differentiable and not objective_function.is_twice_differentiable:
            raise ValueError(f"{type(optimizer).__name__} needs a twice differentiable objective, "
                             f"got {type(objective_function).__name__}")

        self.optimizer = optimizer
        self.objective_function = objective_function
        self.sampler = sampler
        self.glm_constructor = glm_constructor
        self.regularization_context = regularization_context
        self.is_computing_variances = is_computing_variances
        self._state_tracker = None

    def update_regularization_weight(self, regularization_weight):
        context = self.regularization_context
        if context.has_l1:
            self.optimizer.l1_regularization_weight = context.get_l1_regularization_weight(regularization_weight)
        if context.has_l2:
            self.objective_function.l2_regularization_weight = context.get_l2_regularization_weight(
                regularization_weight)

    def compute_variances(self, data, coefficients):
        """
        Diagonal of the pseudo-inverse of the Hessian at `coefficients`, or None
        when the objective has no second derivative.
        """
        if not self.objective_function.is_twice_differentiable:
            return None
        hessian = self.objective_function.hessian_matrix(data, np.asarray(coefficients, dtype=float))
        check_finite('Hessian', hessian)
        return np.diag(pinvh(hessian)).copy()

    def run(self, data, initial_model=None):
        if self.sampler is not None:
            data = self.sampler.down_sample(data)

        if initial_model is None:
            initial_coefficients = self.objective_function.initialize_coefficients(data.n_features)
        else:
            initial_coefficients = initial_model.coefficients.means

        means, tracker = self.optimizer.optimize(self.objective_function, initial_coefficients, data)
        self._state_tracker = tracker

        variances = self.compute_variances(data, means) if self.is_computing_variances else None
        if self.is_computing_variances and variances is None:
            logger.warning(f"{type(self.objective_function).__name__} has no Hessian, variances not computed")
        return self.glm_constructor(Coefficients(means, variances))

    def get_state_tracker(self):
        return self._state_tracker

    def get_model_tracker(self):
        if self._state_tracker is None:
            return None
        return ModelTracker(self._state_tracker.tracked_states, self.glm_constructor)


TASK_DEFINITIONS = {
    TaskType.LOGISTIC_REGRESSION: (LOGISTIC_LOSS, LogisticRegressionModel),
    TaskType.LINEAR_REGRESSION: (SQUARED_LOSS, LinearRegressionModel),
    TaskType.POISSON_REGRESSION: (POISSON_LOSS, PoissonRegressionModel),
    TaskType.SMOOTHED_HINGE_LOSS_LINEAR_SVM: (None, SmoothedHingeLossLinearSVMModel),
}


def build_objective_function(task_type, tree_aggregate_depth=1, l2_regularization_weight=0.0):
    loss_function = TASK_DEFINITIONS[task_type][0]
    if loss_function is None:
        return DistributedSmoothedHingeLossFunction(tree_aggregate_depth, l2_regularization_weight)
    return DistributedGLMLossFunction(loss_function, tree_aggregate_depth, l2_regularization_weight)


def build_optimizer(optimizer_config, regularization_context, regularization_weight, is_tracking_state=True):
    common = dict(tolerance=optimizer_config.tolerance,
                  maximum_iterations=optimizer_config.maximum_iterations,
                  is_tracking_state=is_tracking_state)
    if optimizer_config.optimizer_type == OptimizerType.TRON:
        if regularization_context.has_l1:
            raise ValueError(f"TRON cannot handle {regularization_context} regularization")
        return TRON(**common)
    if regularization_context.has_l1:
        return OWLQN(regularization_context.get_l1_regularization_weight(regularization_weight),
                     num_corrections=optimizer_config.num_corrections, **common)
    return LBFGS(num_corrections=optimizer_config.num_corrections, **common)


def build_optimization_problem(configuration, task_type, tree_aggregate_depth=1, is_computing_variances=False,
                               is_tracking_state=True, seed=None):
    """Assembles a DistributedOptimizationProblem from a GLMOptimizationConfiguration."""
    context = configuration.regularization_context
    l2_weight = context.get_l2_regularization_weight(configuration.regularization_weight)
    objective = build_objective_function(task_type, tree_aggregate_depth, l2_weight)
    glm_constructor = TASK_DEFINITIONS[task_type][1]

    optimizer = build_optimizer(configuration.optimizer_config, context, configuration.regularization_weight,
                                is_tracking_state)

    sampler = None
    if configuration.down_sampling_rate < 1.0:
        if seed is None:
            raise ValueError("Down-sampling needs an explicit seed")
        sampler_class = BinaryClassificationDownSampler if task_type.is_classification else DefaultDownSampler
        sampler = sampler_class(configuration.down_sampling_rate, seed)

    logger.info(f"Built {task_type.value} problem: {type(optimizer).__name__}, {context} "
                f"(weight={configuration.regularization_weight}), tree depth {tree_aggregate_depth}")
    return DistributedOptimizationProblem(optimizer, objective, sampler, glm_constructor, context,
                                          is_computing_variances)
