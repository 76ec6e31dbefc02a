import numpy as np
from scipy.special import expit


class Coefficients:
    """Coefficient means and, when computed, their diagonal variance estimate."""

    def __init__(self, means, variances=None):
        self.means = np.asarray(means, dtype=float)
        self.variances = None if variances is None else np.asarray(variances, dtype=float)
        if self.variances is not None and self.variances.shape != self.means.shape:
            raise ValueError(f"Variances shape {self.variances.shape} does not match means shape {self.means.shape}")

    @property
    def dimension(self):
        return self.means.shape[0]

    def __eq__(self, other):
        if not isinstance(other, Coefficients):
            return NotImplemented
        if (self.variances is None) != (other.variances is None):
            return False
        return (np.array_equal(self.means, other.means)
                and (self.variances is None or np.array_equal(self.variances, other.variances)))

    def __hash__(self):
        return hash(self.means.tobytes())

    def __repr__(self):
        return f"Coefficients(means={self.means!r}, variances={self.variances!r})"


class GeneralizedLinearModel:
    """Linear predictor x·w + offset mapped through the inverse link of the task."""

    def __init__(self, coefficients):
        self.coefficients = coefficients

    def compute_score(self, features, offset=0.0):
        return np.asarray(features, dtype=float) @ self.coefficients.means + offset

    def compute_mean(self, features, offset=0.0):
        return self._link_inverse(self.compute_score(features, offset))

    def _link_inverse(self, scores):
        return scores

    def __repr__(self):
        return f"{type(self).__name__}({self.coefficients!r})"


class LogisticRegressionModel(GeneralizedLinearModel):

    def _link_inverse(self, scores):
        return expit(scores)


class LinearRegressionModel(GeneralizedLinearModel):
    pass


class PoissonRegressionModel(GeneralizedLinearModel):

    def _link_inverse(self, scores):
        return np.exp(scores)


class SmoothedHingeLossLinearSVMModel(GeneralizedLinearModel):
    """Scores are margins; the mean is the predicted 0/1 class."""

    def compute_mean(self, features, offset=0.0):
        return (self.compute_score(features, offset) > 0.0).astype(float)
