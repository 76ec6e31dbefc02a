import math

import networkx as nx
import numpy as np

from data import DEFAULT_OFFSET, DEFAULT_WEIGHT, LabeledPoint

DRIVER = 'driver'


class Worker:
    """One immutable data partition with its worker-local arrays."""

    def __init__(self, worker_id, features, labels, offsets=None, weights=None):
        self.worker_id = worker_id
        self.X_local = np.atleast_2d(np.array(features, dtype=float))
        self.y_local = np.array(labels, dtype=float).reshape(-1)
        self.n_local_samples = self.y_local.shape[0]
        if self.X_local.shape[0] != self.n_local_samples:
            # An empty partition arrives as shape (1, 0) from atleast_2d
            if self.n_local_samples == 0:
                self.X_local = self.X_local.reshape(0, self.X_local.shape[-1])
            else:
                raise ValueError(f"Worker {worker_id}: {self.X_local.shape[0]} feature rows "
                                 f"for {self.n_local_samples} labels")
        self.offsets = self._column(offsets, DEFAULT_OFFSET)
        self.weights = self._column(weights, DEFAULT_WEIGHT)
        for array in (self.X_local, self.y_local, self.offsets, self.weights):
            array.setflags(write=False)

    def _column(self, values, default):
        if values is None:
            return np.full(self.n_local_samples, default)
        values = np.array(values, dtype=float).reshape(-1)
        if values.shape[0] != self.n_local_samples:
            raise ValueError(f"Worker {self.worker_id}: expected {self.n_local_samples} values, got {values.shape[0]}")
        return values

    @property
    def n_features(self):
        return self.X_local.shape[1]

    def compute_margins(self, coefficients):
        return self.X_local @ coefficients + self.offsets

    def subset(self, mask, weights=None):
        return Worker(self.worker_id, self.X_local[mask], self.y_local[mask], self.offsets[mask],
                      self.weights[mask] if weights is None else weights)

    def points(self):
        for i in range(self.n_local_samples):
            yield LabeledPoint(self.y_local[i], self.X_local[i], self.offsets[i], self.weights[i])


class PartitionedDataset:
    """
    Read-only collection of worker partitions. Per-partition work runs on the
    optional executor (a concurrent.futures executor), sequentially otherwise.
    """

    def __init__(self, workers, executor=None):
        self.workers = list(workers)
        if not self.workers:
            raise ValueError("A dataset needs at least one partition")
        widths = {worker.n_features for worker in self.workers}
        if len(widths) != 1:
            raise ValueError(f"Partitions disagree on the number of features: {sorted(widths)}")
        self.executor = executor

    @classmethod
    def from_points(cls, points, n_partitions=1, executor=None):
        points = list(points)
        if n_partitions < 1:
            raise ValueError(f"n_partitions must be >= 1, got {n_partitions}")
        if not points:
            raise ValueError("Cannot build a dataset from zero points")
        chunks = np.array_split(np.arange(len(points)), n_partitions)
        workers = []
        for i, idx in enumerate(chunks):
            chunk = [points[j] for j in idx]
            features = np.array([p.features for p in chunk]).reshape(len(chunk), points[0].features.shape[0])
            workers.append(Worker(i, features,
                                  [p.label for p in chunk],
                                  [p.offset for p in chunk],
                                  [p.weight for p in chunk]))
        return cls(workers, executor=executor)

    @classmethod
    def from_arrays(cls, X, y, n_partitions=1, offsets=None, weights=None, executor=None):
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        chunks = np.array_split(np.arange(X.shape[0]), n_partitions)
        workers = [Worker(i, X[idx], y[idx],
                          None if offsets is None else np.asarray(offsets)[idx],
                          None if weights is None else np.asarray(weights)[idx])
                   for i, idx in enumerate(chunks)]
        return cls(workers, executor=executor)

    @property
    def n_features(self):
        return self.workers[0].n_features

    @property
    def n_samples(self):
        return sum(worker.n_local_samples for worker in self.workers)

    @property
    def num_partitions(self):
        return len(self.workers)

    def points(self):
        for worker in self.workers:
            yield from worker.points()

    def map_partitions(self, func):
        if self.executor is None:
            return [func(worker) for worker in self.workers]
        return list(self.executor.map(func, self.workers))

    def with_workers(self, workers):
        return PartitionedDataset(workers, executor=self.executor)

    def tree_aggregate(self, zero_value, seq_op, comb_op, depth=2):
        """
        seq_op(worker) reduces one partition, comb_op merges two partial results;
        zero_value is the result of an empty tree. Returns (result, floats
        shipped along the aggregation tree).
        """
        partials = self.map_partitions(seq_op)
        return tree_aggregate(partials, zero_value, comb_op, depth)


def build_aggregation_tree(num_partitions, depth):
    """
    Aggregation topology: partition leaves at level 0, intermediate combiners
    above them, edges point towards the driver. Each level shrinks the number
    of combiners by `scale` until the driver can take the rest directly.
    """
    if depth < 1:
        raise ValueError(f"Tree aggregation depth must be >= 1, got {depth}")
    G = nx.DiGraph()
    G.add_node(DRIVER)
    level_nodes = [(0, i) for i in range(num_partitions)]
    G.add_nodes_from(level_nodes)

    scale = max(int(math.ceil(num_partitions ** (1.0 / depth))), 2)
    current = num_partitions
    level = 0
    while current > scale + math.ceil(current / scale):
        current //= scale
        level += 1
        parents = [(level, k) for k in range(current)]
        for i, node in enumerate(level_nodes):
            G.add_edge(node, parents[i % current])
        level_nodes = parents

    for node in level_nodes:
        G.add_edge(node, DRIVER)
    return G


def _num_floats(value):
    if isinstance(value, tuple):
        return sum(_num_floats(v) for v in value)
    return int(np.size(value))


def tree_aggregate(partials, zero_value, comb_op, depth):
    G = build_aggregation_tree(len(partials), depth)
    values = {(0, i): partial for i, partial in enumerate(partials)}
    floats_transmitted = 0

    # Topological order visits every child before its parent, so a node is
    # complete by the time it is shipped upwards.
    for node in nx.topological_sort(G):
        if node == DRIVER:
            break
        value = values.pop(node, None)
        if value is None:
            continue
        parent = next(G.successors(node))
        floats_transmitted += _num_floats(value)
        values[parent] = value if parent not in values else comb_op(values[parent], value)

    result = values.get(DRIVER)
    if result is None:
        result = zero_value
    return result, floats_transmitted
