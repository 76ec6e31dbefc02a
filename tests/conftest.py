# tests/conftest.py
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
from loguru import logger

from config import TaskType
from utils import draw_numerically_benign_points

DATA_RANDOM_SEED = 7
WEIGHT_RANDOM_SEED = 100
WEIGHT_RANDOM_MAX = 10
DIMENSIONS = 25
TRAINING_SAMPLES = DIMENSIONS * DIMENSIONS


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def rng():
    return np.random.default_rng(42)


def benign_points(task_type, weighted=False):
    return draw_numerically_benign_points(
        task_type, DATA_RANDOM_SEED, TRAINING_SAMPLES, DIMENSIONS,
        weight_seed=WEIGHT_RANDOM_SEED if weighted else None, max_weight=WEIGHT_RANDOM_MAX)


def random_coefficients(dimension=DIMENSIONS, seed=11):
    return np.random.default_rng(seed).uniform(-1.0, 1.0, dimension)


@pytest.fixture
def logistic_points():
    return benign_points(TaskType.LOGISTIC_REGRESSION)
