from dataclasses import dataclass, field

import numpy as np

DEFAULT_OFFSET = 0.0
DEFAULT_WEIGHT = 1.0
POSITIVE_RESPONSE_THRESHOLD = 0.5


@dataclass(frozen=True, eq=False)
class LabeledPoint:
    """One training example. The offset is added to the margin and never optimized."""
    label: float
    features: np.ndarray = field(repr=False)
    offset: float = DEFAULT_OFFSET
    weight: float = DEFAULT_WEIGHT

    def __post_init__(self):
        features = np.array(self.features, dtype=float)
        if features.ndim != 1:
            raise ValueError(f"features must be a 1-D vector, got shape {features.shape}")
        features.setflags(write=False)
        object.__setattr__(self, 'features', features)

    def compute_margin(self, coefficients):
        return float(self.features @ coefficients) + self.offset
