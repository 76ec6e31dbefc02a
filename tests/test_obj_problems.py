import numpy as np
import pytest

from config import TaskType
from conftest import benign_points, random_coefficients
from losses import LOGISTIC_LOSS, POISSON_LOSS, SMOOTHED_HINGE_LOSS, SQUARED_LOSS
from obj_problems import DistributedGLMLossFunction, DistributedSmoothedHingeLossFunction
from worker import PartitionedDataset

EPS = 1e-6


def _dataset(task_type, n_partitions=4, weighted=True):
    return PartitionedDataset.from_points(benign_points(task_type, weighted=weighted), n_partitions=n_partitions)


def _direct_hessian(points, coefficients, loss_function):
    matrix = np.zeros((coefficients.shape[0], coefficients.shape[0]))
    for point in points:
        z = np.array([point.compute_margin(coefficients)])
        d2 = loss_function.dzz_loss(z, np.array([point.label]))[0]
        matrix += point.weight * d2 * np.outer(point.features, point.features)
    return matrix


GLM_CASES = [
    (TaskType.LOGISTIC_REGRESSION, LOGISTIC_LOSS),
    (TaskType.LINEAR_REGRESSION, SQUARED_LOSS),
    (TaskType.POISSON_REGRESSION, POISSON_LOSS),
]


@pytest.mark.parametrize("task_type, loss_function", GLM_CASES)
@pytest.mark.parametrize("l2_weight", [0.0, 3.0])
def test_gradient_matches_finite_difference(task_type, loss_function, l2_weight):
    data = _dataset(task_type)
    objective = DistributedGLMLossFunction(loss_function, tree_aggregate_depth=2, l2_regularization_weight=l2_weight)
    coefficients = random_coefficients() * 0.2

    gradient = objective.gradient(data, coefficients)
    numeric = np.empty_like(gradient)
    for i in range(coefficients.shape[0]):
        step = np.zeros_like(coefficients)
        step[i] = EPS
        numeric[i] = (objective.value(data, coefficients + step) - objective.value(data, coefficients - step)) / (2 * EPS)
    np.testing.assert_allclose(gradient, numeric, rtol=1e-5, atol=1e-4)


@pytest.mark.parametrize("task_type, loss_function", GLM_CASES)
def test_hessian_products_agree_with_matrix(task_type, loss_function):
    data = _dataset(task_type)
    objective = DistributedGLMLossFunction(loss_function, l2_regularization_weight=0.5)
    coefficients = random_coefficients()
    vector = random_coefficients(seed=3)

    hessian = objective.hessian_matrix(data, coefficients)
    np.testing.assert_allclose(hessian, hessian.T, rtol=1e-12, atol=1e-10)
    np.testing.assert_allclose(objective.hessian_vector(data, coefficients, vector), hessian @ vector,
                               rtol=1e-9, atol=1e-9)
    np.testing.assert_allclose(objective.hessian_diagonal(data, coefficients), np.diag(hessian),
                               rtol=1e-9, atol=1e-9)


@pytest.mark.parametrize("task_type, loss_function", GLM_CASES)
def test_hessian_matrix_matches_pointwise_sum(task_type, loss_function):
    points = benign_points(task_type, weighted=True)
    data = PartitionedDataset.from_points(points, n_partitions=5)
    objective = DistributedGLMLossFunction(loss_function, tree_aggregate_depth=3)
    coefficients = random_coefficients()
    np.testing.assert_allclose(objective.hessian_matrix(data, coefficients),
                               _direct_hessian(points, coefficients, loss_function), rtol=1e-10, atol=1e-9)


@pytest.mark.parametrize("depth", [1, 2, 4])
@pytest.mark.parametrize("n_partitions", [1, 3, 17])
def test_result_does_not_depend_on_aggregation_layout(depth, n_partitions):
    points = benign_points(TaskType.LOGISTIC_REGRESSION)
    reference = DistributedGLMLossFunction(LOGISTIC_LOSS).calculate(
        PartitionedDataset.from_points(points), random_coefficients())
    objective = DistributedGLMLossFunction(LOGISTIC_LOSS, tree_aggregate_depth=depth)
    value, gradient = objective.calculate(PartitionedDataset.from_points(points, n_partitions), random_coefficients())
    assert value == pytest.approx(reference[0], rel=1e-12)
    np.testing.assert_allclose(gradient, reference[1], rtol=1e-10, atol=1e-9)


def test_l2_terms_are_embedded():
    data = _dataset(TaskType.LINEAR_REGRESSION)
    coefficients = random_coefficients()
    plain = DistributedGLMLossFunction(SQUARED_LOSS)
    regularized = DistributedGLMLossFunction(SQUARED_LOSS, l2_regularization_weight=2.0)

    value, gradient = plain.calculate(data, coefficients)
    value_l2, gradient_l2 = regularized.calculate(data, coefficients)
    assert value_l2 == pytest.approx(value + coefficients @ coefficients)
    np.testing.assert_allclose(gradient_l2, gradient + 2.0 * coefficients)
    np.testing.assert_allclose(regularized.hessian_matrix(data, coefficients),
                               plain.hessian_matrix(data, coefficients) + 2.0 * np.eye(coefficients.shape[0]))


def test_offsets_shift_the_margin():
    points = benign_points(TaskType.LINEAR_REGRESSION)
    data = PartitionedDataset.from_points(points)
    shifted = PartitionedDataset.from_arrays(
        [p.features for p in points], [p.label for p in points], offsets=np.full(len(points), 0.25))
    objective = DistributedGLMLossFunction(SQUARED_LOSS)
    coefficients = random_coefficients()

    # A constant offset of 0.25 on every point equals a label shift of -0.25
    moved = PartitionedDataset.from_arrays(
        [p.features for p in points], [p.label - 0.25 for p in points])
    assert objective.value(shifted, coefficients) == pytest.approx(objective.value(moved, coefficients))
    assert objective.value(shifted, coefficients) != pytest.approx(objective.value(data, coefficients))


def test_negative_l2_weight_is_rejected():
    objective = DistributedGLMLossFunction(SQUARED_LOSS)
    with pytest.raises(ValueError):
        objective.l2_regularization_weight = -1.0
    with pytest.raises(ValueError):
        DistributedSmoothedHingeLossFunction(l2_regularization_weight=-0.1)


def test_invalid_depth_is_rejected():
    with pytest.raises(ValueError):
        DistributedGLMLossFunction(LOGISTIC_LOSS, tree_aggregate_depth=0)


def test_glm_objective_needs_twice_differentiable_loss():
    with pytest.raises(ValueError):
        DistributedGLMLossFunction(SMOOTHED_HINGE_LOSS)


def test_capabilities():
    glm = DistributedGLMLossFunction(LOGISTIC_LOSS)
    hinge = DistributedSmoothedHingeLossFunction()
    assert glm.is_twice_differentiable and glm.supports_l2_regularization
    assert not hinge.is_twice_differentiable and hinge.supports_l2_regularization
    assert not hasattr(hinge, 'hessian_matrix')


def test_smoothed_hinge_gradient_matches_finite_difference():
    data = _dataset(TaskType.SMOOTHED_HINGE_LOSS_LINEAR_SVM)
    objective = DistributedSmoothedHingeLossFunction(l2_regularization_weight=1.0)
    coefficients = random_coefficients() * 0.1
    gradient = objective.gradient(data, coefficients)
    direction = random_coefficients(seed=5)
    numeric = (objective.value(data, coefficients + EPS * direction)
               - objective.value(data, coefficients - EPS * direction)) / (2 * EPS)
    assert gradient @ direction == pytest.approx(numeric, rel=1e-4)


def test_floats_transmitted_accumulate():
    data = _dataset(TaskType.LOGISTIC_REGRESSION, n_partitions=4)
    objective = DistributedGLMLossFunction(LOGISTIC_LOSS, tree_aggregate_depth=1)
    coefficients = random_coefficients()
    objective.calculate(data, coefficients)
    assert objective.floats_transmitted == 4 * (1 + coefficients.shape[0])
    objective.hessian_vector(data, coefficients, coefficients)
    assert objective.floats_transmitted == 4 * (1 + 2 * coefficients.shape[0])
