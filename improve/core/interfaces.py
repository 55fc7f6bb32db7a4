"""Defines the core interfaces for the ImproVe analysis pipeline."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]


class IRoughnessModel(ABC):
    """Interface for pairwise sensory-dissonance formulas.

    Implementations must accept scalars or numpy arrays (broadcasting like
    numpy ufuncs) and return non-negative values, zero for identical
    frequencies, symmetric in the two components.
    """

    name: str = "abstract"

    @abstractmethod
    def roughness(
        self, f1: ArrayLike, a1: ArrayLike, f2: ArrayLike, a2: ArrayLike
    ) -> ArrayLike:
        """Roughness contributed by two components."""
        pass

    def describe(self) -> dict:
        """Return the model's tunable parameters."""
        return {}


class ISpectralTransform(ABC):
    """Interface for the frame-to-magnitude-spectrum transform."""

    @abstractmethod
    def transform(self, frame: np.ndarray) -> np.ndarray:
        """Return the magnitude per bin of one frame, DC bin included."""
        pass

    @property
    @abstractmethod
    def bin_count(self) -> int:
        """Number of bins returned by ``transform``."""
        pass

    @property
    @abstractmethod
    def bin_width(self) -> float:
        """Width of one bin in Hz."""
        pass
