import numpy as np
from loguru import logger
from sklearn.datasets import load_svmlight_file, make_classification, make_regression
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from config import TaskType
from data import LabeledPoint
from worker import PartitionedDataset


def _generate_raw(task_type, config):
    n_samples = config['n_samples']
    n_features = config['n_features']
    n_informative = config['n_informative_features']
    seed = config.get('seed', 203)

    if task_type.is_classification:
        X, y = make_classification(n_samples=n_samples, n_features=n_features,
                                   n_informative=n_informative, n_redundant=n_features - n_informative,
                                   n_clusters_per_class=1, flip_y=0.05,
                                   class_sep=config.get('classification_sep', 0.8),
                                   random_state=seed)
        return X, y.astype(float)
    if task_type == TaskType.LINEAR_REGRESSION:
        X, y = make_regression(n_samples=n_samples, n_features=n_features,
                               n_informative=n_informative, noise=10.0, random_state=seed)
        return X, y
    if task_type == TaskType.POISSON_REGRESSION:
        rng = np.random.default_rng(seed)
        X = rng.standard_normal((n_samples, n_features))
        coef = np.zeros(n_features)
        coef[:n_informative] = rng.uniform(-0.3, 0.3, n_informative)
        y = rng.poisson(np.exp(X @ coef + 0.5)).astype(float)
        return X, y
    raise NotImplementedError(f"Wrong {task_type}")


def generate_and_preprocess_data(n_workers, config):
    """
    Synthetic data for the configured task, standardized with an intercept
    column, split into train/holdout and spread over `n_workers` partitions
    sorted by label (non-IID partitions).
    """
    task_type = TaskType(config['problem_type'])
    seed = config.get('seed', 203)
    logger.info(f"Generating non-IID {task_type.value} data")

    X, y = _generate_raw(task_type, config)
    X_train, X_holdout, y_train, y_holdout = train_test_split(
        X, y, test_size=config.get('holdout_fraction', 0.2), random_state=seed)

    scaler = StandardScaler()
    X_train = scaler.fit_transform(X_train)
    X_holdout = scaler.transform(X_holdout)
    X_train = np.hstack([X_train, np.ones((X_train.shape[0], 1))])
    X_holdout = np.hstack([X_holdout, np.ones((X_holdout.shape[0], 1))])

    # Force non-IID by sorting
    order = np.argsort(y_train, kind='stable')
    X_train, y_train = X_train[order], y_train[order]

    dataset = PartitionedDataset.from_arrays(X_train, y_train, n_partitions=n_workers)
    for worker in dataset.workers:
        if worker.n_local_samples:
            logger.debug(f"Worker {worker.worker_id}: {worker.n_local_samples} samples, "
                         f"y range [{worker.y_local.min():.2f}, {worker.y_local.max():.2f}], "
                         f"mean y {worker.y_local.mean():.2f}")
    logger.info(f"Generated {X_train.shape[0]} training and {X_holdout.shape[0]} holdout samples, "
                f"{X_train.shape[1]} features")
    return dataset, X_train, y_train, X_holdout, y_holdout


def draw_numerically_benign_points(task_type, seed, n_samples, n_features, weight_seed=None, max_weight=10.0):
    """
    Seeded points with features in [-1, 1]; labels are balanced 0/1 for
    classification, Gaussian for linear and Poisson counts for Poisson
    regression. With `weight_seed`, weights are uniform in [0, max_weight).
    """
    rng = np.random.default_rng(seed)
    features = rng.uniform(-1.0, 1.0, (n_samples, n_features))

    if task_type.is_classification:
        labels = (np.arange(n_samples) % 2).astype(float)
    elif task_type == TaskType.LINEAR_REGRESSION:
        labels = rng.standard_normal(n_samples)
    elif task_type == TaskType.POISSON_REGRESSION:
        labels = rng.poisson(1.0, n_samples).astype(float)
    else:
        raise NotImplementedError(f"Wrong {task_type}")

    if weight_seed is None:
        weights = np.ones(n_samples)
    else:
        weights = np.random.default_rng(weight_seed).random(n_samples) * max_weight
    return [LabeledPoint(labels[i], features[i], weight=weights[i]) for i in range(n_samples)]


def load_libsvm_points(path, n_features=None, add_intercept=True):
    """Reads a libSVM file with +1/-1 labels into LabeledPoints with 1/0 labels."""
    X, y = load_svmlight_file(str(path), n_features=n_features)
    X = X.toarray()
    if add_intercept:
        X = np.hstack([X, np.ones((X.shape[0], 1))])
    labels = y / 2.0 + 0.5
    return [LabeledPoint(labels[i], X[i]) for i in range(X.shape[0])]
