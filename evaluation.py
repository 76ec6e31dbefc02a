import numpy as np

from data import DEFAULT_OFFSET, DEFAULT_WEIGHT, POSITIVE_RESPONSE_THRESHOLD


class LocalEvaluator:
    """Driver-side metric over (id -> (label, offset, weight)) and (id -> score) maps."""

    def __init__(self, label_offset_weights, default_score=0.0):
        self.label_offset_weights = dict(label_offset_weights)
        self.default_score = default_score

    @classmethod
    def from_labels(cls, labels, default_score=0.0):
        return cls({uid: (label, DEFAULT_OFFSET, DEFAULT_WEIGHT) for uid, label in labels.items()}, default_score)

    @property
    def num_labels(self):
        return len(self.label_offset_weights)

    def _join(self, scores):
        n = self.num_labels
        joined = np.empty((n, 3))
        for pos, (uid, (label, offset, weight)) in enumerate(self.label_offset_weights.items()):
            joined[pos] = (scores.get(uid, self.default_score) + offset, label, weight)
        return joined[:, 0], joined[:, 1], joined[:, 2]

    def evaluate(self, scores):
        raise NotImplementedError

    def better_than(self, score, other):
        raise NotImplementedError


class AreaUnderROCCurveLocalEvaluator(LocalEvaluator):
    """
    Weighted area under the ROC curve. Examples are swept in descending score
    order; every negative adds the positive weight seen so far, and the sum is
    normalized by total positive weight times total negative weight.

    The result is non-finite when either class has zero total weight.
    """

    def evaluate(self, scores):
        score_values, labels, weights = self._join(scores)

        # Stable sort keeps tied scores in input order
        order = np.argsort(-score_values, kind='stable')
        labels = labels[order]
        weights = weights[order]

        positive = labels > POSITIVE_RESPONSE_THRESHOLD
        positive_running = np.cumsum(np.where(positive, weights, 0.0))
        auc_accum = positive_running[~positive].sum()
        positive_weight = weights[positive].sum()
        negative_weight = weights[~positive].sum()

        with np.errstate(divide='ignore', invalid='ignore'):
            return float(np.float64(auc_accum) / (positive_weight * negative_weight))

    def better_than(self, score, other):
        return score > other


class RMSELocalEvaluator(LocalEvaluator):
    """Weighted root-mean-squared error of score + offset against the label."""

    def evaluate(self, scores):
        score_values, labels, weights = self._join(scores)
        with np.errstate(divide='ignore', invalid='ignore'):
            return float(np.sqrt(np.sum(weights * (score_values - labels) ** 2) / np.sum(weights)))

    def better_than(self, score, other):
        return score < other
