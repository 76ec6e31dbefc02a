import numpy as np

from losses import SMOOTHED_HINGE_LOSS


class ObjectiveFunction:
    """
    Loss summed over every partition of a PartitionedDataset. Partition sums
    are merged with a tree aggregation of configurable depth.
    """
    is_twice_differentiable = False
    supports_l2_regularization = False

    def __init__(self, tree_aggregate_depth=1):
        if tree_aggregate_depth < 1:
            raise ValueError(f"Tree aggregation depth must be >= 1, got {tree_aggregate_depth}")
        self.tree_aggregate_depth = tree_aggregate_depth
        self.floats_transmitted = 0

    def _aggregate(self, data, zero_value, seq_op, comb_op):
        result, shipped = data.tree_aggregate(zero_value, seq_op, comb_op, self.tree_aggregate_depth)
        self.floats_transmitted += shipped
        return result

    def initialize_coefficients(self, dimension):
        return np.zeros(dimension)

    def calculate(self, data, coefficients):
        """Returns (value, gradient) in one aggregation pass."""
        raise NotImplementedError

    def value(self, data, coefficients):
        return self.calculate(data, coefficients)[0]

    def gradient(self, data, coefficients):
        return self.calculate(data, coefficients)[1]


class TwiceDiffFunction(ObjectiveFunction):
    is_twice_differentiable = True

    def hessian_vector(self, data, coefficients, vector):
        raise NotImplementedError

    def hessian_diagonal(self, data, coefficients):
        raise NotImplementedError

    def hessian_matrix(self, data, coefficients):
        raise NotImplementedError


class L2RegularizationMixin:
    """Embeds 0.5 * l2 * ||w||^2 into an objective."""
    supports_l2_regularization = True
    _l2_regularization_weight = 0.0

    @property
    def l2_regularization_weight(self):
        return self._l2_regularization_weight

    @l2_regularization_weight.setter
    def l2_regularization_weight(self, weight):
        if weight < 0:
            raise ValueError(f"L2 regularization weight must be non-negative, got {weight}")
        self._l2_regularization_weight = float(weight)

    def _l2_value_and_gradient(self, coefficients):
        l2 = self._l2_regularization_weight
        return 0.5 * l2 * float(coefficients @ coefficients), l2 * coefficients


def _sum_pair(a, b):
    return a[0] + b[0], a[1] + b[1]


def _sum(a, b):
    return a + b


def _pointwise_value_and_gradient(objective, data, coefficients):
    loss_function = objective.loss_function

    def seq_op(worker):
        margins = worker.compute_margins(coefficients)
        loss, dz_loss = loss_function.loss_and_dz_loss(margins, worker.y_local)
        return float(worker.weights @ loss), worker.X_local.T @ (worker.weights * dz_loss)

    zero_value = (0.0, np.zeros_like(coefficients, dtype=float))
    value, gradient = objective._aggregate(data, zero_value, seq_op, _sum_pair)
    l2_value, l2_gradient = objective._l2_value_and_gradient(coefficients)
    return value + l2_value, gradient + l2_gradient


class DistributedGLMLossFunction(L2RegularizationMixin, TwiceDiffFunction):
    """Generalized linear model loss: sum_i weight_i * loss(x_i·w + offset_i, y_i)."""

    def __init__(self, loss_function, tree_aggregate_depth=1, l2_regularization_weight=0.0):
        if not loss_function.is_twice_differentiable:
            raise ValueError(f"{type(loss_function).__name__} has no second derivative; "
                             f"use a gradient-only objective instead")
        super().__init__(tree_aggregate_depth)
        self.loss_function = loss_function
        self.l2_regularization_weight = l2_regularization_weight

    def calculate(self, data, coefficients):
        return _pointwise_value_and_gradient(self, data, coefficients)

    def _curvature(self, worker, coefficients):
        margins = worker.compute_margins(coefficients)
        return worker.weights * self.loss_function.dzz_loss(margins, worker.y_local)

    def hessian_vector(self, data, coefficients, vector):
        def seq_op(worker):
            curvature = self._curvature(worker, coefficients)
            return worker.X_local.T @ (curvature * (worker.X_local @ vector))

        result = self._aggregate(data, np.zeros_like(vector, dtype=float), seq_op, _sum)
        return result + self.l2_regularization_weight * vector

    def hessian_diagonal(self, data, coefficients):
        def seq_op(worker):
            return (worker.X_local ** 2).T @ self._curvature(worker, coefficients)

        result = self._aggregate(data, np.zeros_like(coefficients, dtype=float), seq_op, _sum)
        return result + self.l2_regularization_weight

    def hessian_matrix(self, data, coefficients):
        def seq_op(worker):
            curvature = self._curvature(worker, coefficients)
            return (worker.X_local.T * curvature) @ worker.X_local

        dimension = coefficients.shape[0]
        result = self._aggregate(data, np.zeros((dimension, dimension)), seq_op, _sum)
        return result + self.l2_regularization_weight * np.eye(dimension)


class DistributedSmoothedHingeLossFunction(L2RegularizationMixin, ObjectiveFunction):
    """Linear SVM objective with the smoothed hinge loss; gradient only."""

    def __init__(self, tree_aggregate_depth=1, l2_regularization_weight=0.0):
        super().__init__(tree_aggregate_depth)
        self.loss_function = SMOOTHED_HINGE_LOSS
        self.l2_regularization_weight = l2_regularization_weight

    def calculate(self, data, coefficients):
        return _pointwise_value_and_gradient(self, data, coefficients)
