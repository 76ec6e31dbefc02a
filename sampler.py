import numpy as np
from loguru import logger

from data import POSITIVE_RESPONSE_THRESHOLD


class DownSampler:
    """Seeded stochastic subsampling of a partitioned dataset."""

    def __init__(self, down_sampling_rate, seed):
        if not 0.0 < down_sampling_rate < 1.0:
            raise ValueError(f"Down-sampling rate must be in (0, 1), got {down_sampling_rate}")
        self.down_sampling_rate = down_sampling_rate
        self.seed = seed

    def _rng(self, worker):
        # One generator per partition so the sample does not depend on execution order
        return np.random.default_rng([self.seed, worker.worker_id])

    def _sample_worker(self, worker):
        raise NotImplementedError

    def down_sample(self, dataset):
        sampled = dataset.with_workers(dataset.map_partitions(self._sample_worker))
        logger.debug(f"{type(self).__name__}: kept {sampled.n_samples} of {dataset.n_samples} points "
                     f"(rate={self.down_sampling_rate}, seed={self.seed})")
        return sampled


class DefaultDownSampler(DownSampler):
    """Keeps each point independently with probability equal to the rate."""

    def _sample_worker(self, worker):
        keep = self._rng(worker).random(worker.n_local_samples) < self.down_sampling_rate
        return worker.subset(keep)


class BinaryClassificationDownSampler(DownSampler):
    """
    Keeps every positive, samples negatives at the rate and scales the kept
    negatives' weights by 1 / rate so the expected total weight is unchanged.
    """

    def _sample_worker(self, worker):
        positive = worker.y_local > POSITIVE_RESPONSE_THRESHOLD
        draws = self._rng(worker).random(worker.n_local_samples)
        keep = positive | (draws < self.down_sampling_rate)
        weights = np.where(positive, worker.weights, worker.weights / self.down_sampling_rate)
        return worker.subset(keep, weights=weights[keep])
