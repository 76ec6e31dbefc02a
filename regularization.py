from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RegularizationType(Enum):
    NONE = 'NONE'
    L1 = 'L1'
    L2 = 'L2'
    ELASTIC_NET = 'ELASTIC_NET'


DEFAULT_ELASTIC_NET_ALPHA = 0.5


@dataclass(frozen=True)
class RegularizationContext:
    """
    Splits a total regularization weight into its L1 and L2 parts. The L1
    share is alpha: 1 for L1, 0 for L2, the mixing parameter for elastic net.
    """
    regularization_type: RegularizationType
    elastic_net_alpha: Optional[float] = None

    def __post_init__(self):
        if self.elastic_net_alpha is not None:
            if self.regularization_type != RegularizationType.ELASTIC_NET:
                raise ValueError(f"Alpha is only valid for elastic net, not {self.regularization_type.name}")
            if not 0.0 <= self.elastic_net_alpha <= 1.0:
                raise ValueError(f"Elastic net alpha must be in [0, 1], got {self.elastic_net_alpha}")

    @property
    def alpha(self):
        if self.regularization_type == RegularizationType.ELASTIC_NET:
            return DEFAULT_ELASTIC_NET_ALPHA if self.elastic_net_alpha is None else self.elastic_net_alpha
        if self.regularization_type == RegularizationType.L1:
            return 1.0
        return 0.0

    @property
    def has_l1(self):
        return self.regularization_type in (RegularizationType.L1, RegularizationType.ELASTIC_NET)

    @property
    def has_l2(self):
        return self.regularization_type in (RegularizationType.L2, RegularizationType.ELASTIC_NET)

    def get_l1_regularization_weight(self, regularization_weight):
        _check_weight(regularization_weight)
        return self.alpha * regularization_weight if self.has_l1 else 0.0

    def get_l2_regularization_weight(self, regularization_weight):
        _check_weight(regularization_weight)
        return (1.0 - self.alpha) * regularization_weight if self.has_l2 else 0.0

    def __str__(self):
        if self.regularization_type == RegularizationType.ELASTIC_NET:
            return f"ELASTIC_NET(alpha={self.alpha})"
        return self.regularization_type.name


def _check_weight(regularization_weight):
    if regularization_weight < 0:
        raise ValueError(f"Regularization weight must be non-negative, got {regularization_weight}")


def elastic_net(alpha=None):
    return RegularizationContext(RegularizationType.ELASTIC_NET, alpha)


NO_REGULARIZATION = RegularizationContext(RegularizationType.NONE)
L1_REGULARIZATION = RegularizationContext(RegularizationType.L1)
L2_REGULARIZATION = RegularizationContext(RegularizationType.L2)
