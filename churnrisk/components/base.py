"""Base class for scoring stages."""

from abc import ABC
from typing import TYPE_CHECKING, Iterable, Tuple, TypeVar

if TYPE_CHECKING:
    from ..config import ScoringConfig

T = TypeVar("T")


class BaseComponent(ABC):
    """
    Abstract base class for pipeline stages.

    Each stage computes one aspect of churn risk from already-derived
    inputs. Everything tunable is read from the injected config.
    """

    name: str = "base"

    def __init__(self, config: "ScoringConfig"):
        """
        Initialize stage with configuration.

        Args:
            config: ScoringConfig instance with thresholds and weights
        """
        self.config = config

    @staticmethod
    def first_match(
        value: float,
        thresholds: Iterable[Tuple[float, T]],
        matches,
        default: T,
    ) -> T:
        """
        Walk (bound, result) pairs in order and return the first result
        whose bound satisfies ``matches(value, bound)``.
        """
        for bound, result in thresholds:
            if matches(value, bound):
                return result
        return default
