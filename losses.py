import numpy as np
from scipy.special import expit

from data import POSITIVE_RESPONSE_THRESHOLD


class PointwiseLossFunction:
    """
    Loss of one example as a function of its margin z = x·w + offset.
    All methods are vectorized over a partition's margins and labels.
    """
    is_twice_differentiable = True

    def loss_and_dz_loss(self, margins, labels):
        """Returns (loss, dloss/dz) per example."""
        raise NotImplementedError

    def dzz_loss(self, margins, labels):
        """Returns d2loss/dz2 per example."""
        raise NotImplementedError


class LogisticLossFunction(PointwiseLossFunction):

    def loss_and_dz_loss(self, margins, labels):
        y = (labels > POSITIVE_RESPONSE_THRESHOLD).astype(float)
        # log(1 + e^z) without overflow
        loss = np.logaddexp(0.0, margins) - y * margins
        return loss, expit(margins) - y

    def dzz_loss(self, margins, labels):
        sigmoid = expit(margins)
        return sigmoid * (1.0 - sigmoid)


class SquaredLossFunction(PointwiseLossFunction):

    def loss_and_dz_loss(self, margins, labels):
        residuals = margins - labels
        return 0.5 * residuals ** 2, residuals

    def dzz_loss(self, margins, labels):
        return np.ones_like(margins)


class PoissonLossFunction(PointwiseLossFunction):

    def loss_and_dz_loss(self, margins, labels):
        rate = np.exp(margins)
        return rate - labels * margins, rate - labels

    def dzz_loss(self, margins, labels):
        return np.exp(margins)


class SmoothedHingeLossFunction(PointwiseLossFunction):
    """
    Rennie's smoothed hinge loss. Labels above 0.5 are the positive class.
    Differentiable once: the second derivative jumps at both ends of the
    quadratic segment, so this loss only supports gradient-based methods.
    """
    is_twice_differentiable = False

    def loss_and_dz_loss(self, margins, labels):
        y = np.where(labels > POSITIVE_RESPONSE_THRESHOLD, 1.0, -1.0)
        t = y * margins
        loss = np.where(t <= 0.0, 0.5 - t, np.where(t < 1.0, 0.5 * (1.0 - t) ** 2, 0.0))
        dt_loss = np.where(t <= 0.0, -1.0, np.where(t < 1.0, t - 1.0, 0.0))
        return loss, y * dt_loss

    def dzz_loss(self, margins, labels):
        raise NotImplementedError("Smoothed hinge loss has no second derivative")


LOGISTIC_LOSS = LogisticLossFunction()
SQUARED_LOSS = SquaredLossFunction()
POISSON_LOSS = PoissonLossFunction()
SMOOTHED_HINGE_LOSS = SmoothedHingeLossFunction()
