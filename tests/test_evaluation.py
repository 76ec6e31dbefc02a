import math

import numpy as np
import pytest

from evaluation import AreaUnderROCCurveLocalEvaluator, LocalEvaluator, RMSELocalEvaluator


def _auc(labels, scores, weights=None, offsets=None):
    n = len(labels)
    weights = np.ones(n) if weights is None else weights
    offsets = np.zeros(n) if offsets is None else offsets
    evaluator = AreaUnderROCCurveLocalEvaluator(
        {i: (labels[i], offsets[i], weights[i]) for i in range(n)})
    return evaluator.evaluate(dict(enumerate(scores)))


def test_perfect_separation():
    assert _auc([1, 1, 0, 0], [0.9, 0.8, 0.2, 0.1]) == 1.0
    assert _auc([0, 0, 1, 1], [0.9, 0.8, 0.2, 0.1]) == 0.0


def test_invariant_to_monotonic_transform(rng):
    labels = rng.integers(0, 2, 200)
    scores = rng.standard_normal(200)
    assert _auc(labels, np.exp(scores)) == pytest.approx(_auc(labels, scores))
    assert _auc(labels, 3.0 * scores - 1.0) == pytest.approx(_auc(labels, scores))


def test_random_scores_are_near_half(rng):
    labels = rng.integers(0, 2, 20000)
    scores = rng.random(20000)
    assert _auc(labels, scores) == pytest.approx(0.5, abs=0.02)


def test_hand_computed_weighted_example():
    # Descending order: +(w=2), -(w=1), +(w=1), -(w=3)
    # Each negative adds the positive weight above it, 2 then 3, regardless of its own weight
    auc = _auc([1, 0, 1, 0], [0.9, 0.7, 0.5, 0.1], weights=np.array([2.0, 1.0, 1.0, 3.0]))
    assert auc == pytest.approx(5.0 / 12.0)


def test_labels_thresholded_at_half():
    assert _auc([0.8, 0.2, 0.6, 0.4], [4.0, 3.0, 2.0, 1.0]) == pytest.approx(0.75)


@pytest.mark.parametrize("labels, weights", [
    ([1, 1, 1], [1.0, 1.0, 1.0]),
    ([0, 0, 0], [1.0, 1.0, 1.0]),
    ([1, 0, 0], [0.0, 1.0, 2.0]),
    ([1, 0, 1], [1.0, 0.0, 1.0]),
])
def test_undefined_when_a_class_has_no_weight(labels, weights):
    assert not math.isfinite(_auc(labels, [0.3, 0.2, 0.1], weights=np.array(weights)))


def test_offsets_are_added_to_scores():
    # Without the offsets the ranking is perfectly wrong
    auc = _auc([1, 0], [0.0, 1.0], offsets=np.array([5.0, 0.0]))
    assert auc == 1.0


def test_missing_scores_use_default():
    evaluator = AreaUnderROCCurveLocalEvaluator.from_labels({'a': 1.0, 'b': 0.0, 'c': 0.0}, default_score=-1.0)
    assert evaluator.num_labels == 3
    assert evaluator.evaluate({'a': 0.0, 'b': 0.5}) == pytest.approx(0.5)


def test_rmse():
    evaluator = RMSELocalEvaluator({0: (1.0, 0.0, 1.0), 1: (3.0, 1.0, 3.0)})
    # Residuals 1 and -2 with weights 1 and 3
    assert evaluator.evaluate({0: 2.0, 1: 0.0}) == pytest.approx(math.sqrt((1.0 + 12.0) / 4.0))


def test_better_than():
    auc = AreaUnderROCCurveLocalEvaluator({})
    rmse = RMSELocalEvaluator({})
    assert auc.better_than(0.9, 0.8)
    assert rmse.better_than(0.8, 0.9)


def test_base_evaluator_is_abstract():
    with pytest.raises(NotImplementedError):
        LocalEvaluator({}).evaluate({})
