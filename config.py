from dataclasses import dataclass, field
from enum import Enum

from regularization import NO_REGULARIZATION, RegularizationContext, RegularizationType


class TaskType(Enum):
    LOGISTIC_REGRESSION = 'logistic'
    LINEAR_REGRESSION = 'linear'
    POISSON_REGRESSION = 'poisson'
    SMOOTHED_HINGE_LOSS_LINEAR_SVM = 'smoothed_hinge'

    @property
    def is_classification(self):
        return self in (TaskType.LOGISTIC_REGRESSION, TaskType.SMOOTHED_HINGE_LOSS_LINEAR_SVM)


class OptimizerType(Enum):
    LBFGS = 'LBFGS'
    TRON = 'TRON'


@dataclass(frozen=True)
class OptimizerConfig:
    optimizer_type: OptimizerType = OptimizerType.LBFGS
    maximum_iterations: int = 100
    tolerance: float = 1e-7
    num_corrections: int = 10

    def __post_init__(self):
        if self.maximum_iterations < 1:
            raise ValueError(f"maximum_iterations must be >= 1, got {self.maximum_iterations}")
        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.num_corrections < 1:
            raise ValueError(f"num_corrections must be >= 1, got {self.num_corrections}")


@dataclass(frozen=True)
class GLMOptimizationConfiguration:
    optimizer_config: OptimizerConfig = field(default_factory=OptimizerConfig)
    regularization_context: RegularizationContext = NO_REGULARIZATION
    regularization_weight: float = 0.0
    down_sampling_rate: float = 1.0

    def __post_init__(self):
        if self.regularization_weight < 0:
            raise ValueError(f"regularization_weight must be non-negative, got {self.regularization_weight}")
        if not 0.0 < self.down_sampling_rate <= 1.0:
            raise ValueError(f"down_sampling_rate must be in (0, 1], got {self.down_sampling_rate}")

    @classmethod
    def from_dict(cls, config):
        """Builds a configuration from the flat option dict used by the simulator."""
        try:
            optimizer_type = OptimizerType(config.get('optimizer', 'LBFGS').upper())
            regularization_type = RegularizationType(config.get('regularization', 'NONE').upper())
        except ValueError as e:
            raise ValueError(f"Invalid optimization configuration: {e}") from e

        optimizer_config = OptimizerConfig(
            optimizer_type=optimizer_type,
            maximum_iterations=config.get('max_iterations', 100),
            tolerance=config.get('tolerance', 1e-7),
            num_corrections=config.get('num_corrections', 10))
        alpha = config.get('elastic_net_alpha') if regularization_type == RegularizationType.ELASTIC_NET else None
        return cls(
            optimizer_config=optimizer_config,
            regularization_context=RegularizationContext(regularization_type, alpha),
            regularization_weight=config.get('regularization_weight', 0.0),
            down_sampling_rate=config.get('down_sampling_rate', 1.0))
