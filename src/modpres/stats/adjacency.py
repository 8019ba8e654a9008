"""
Correlation → adjacency transforms.

Module preservation must score modules on the same network the modules
were detected on, so the transform is injected rather than hardcoded. The
built-ins follow the WGCNA network types:

    unsigned        a = |r| ** power                 (default power 6)
    signed          a = ((1 + r) / 2) ** power       (default power 12)
    signed hybrid   a = r ** power if r > 0 else 0   (default power 6)

Any callable mapping a correlation array to an adjacency array of the same
shape (values in [0, 1]) can be wrapped with :meth:`AdjacencyTransform.custom`.

Examples:
    >>> import numpy as np
    >>> from modpres.stats.adjacency import AdjacencyTransform
    >>> transform = AdjacencyTransform.from_name("signed", power=2)
    >>> transform(np.array([-1.0, 0.0, 1.0]))
    array([0.  , 0.25, 1.  ])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from modpres.core.errors import ConfigurationError

__all__ = ['AdjacencyTransform', 'NETWORK_TYPES', 'DEFAULT_POWERS']

NETWORK_TYPES = ("unsigned", "signed", "signed hybrid")

DEFAULT_POWERS = {
    "unsigned": 6.0,
    "signed": 12.0,
    "signed hybrid": 6.0,
}


def _unsigned(power: float) -> Callable[[np.ndarray], np.ndarray]:
    def transform(cor: np.ndarray) -> np.ndarray:
        return np.abs(cor) ** power
    return transform


def _signed(power: float) -> Callable[[np.ndarray], np.ndarray]:
    def transform(cor: np.ndarray) -> np.ndarray:
        return ((1.0 + cor) / 2.0) ** power
    return transform


def _signed_hybrid(power: float) -> Callable[[np.ndarray], np.ndarray]:
    def transform(cor: np.ndarray) -> np.ndarray:
        return np.where(cor > 0, np.clip(cor, 0.0, None) ** power, 0.0)
    return transform


_BUILDERS = {
    "unsigned": _unsigned,
    "signed": _signed,
    "signed hybrid": _signed_hybrid,
}


@dataclass(frozen=True)
class AdjacencyTransform:
    """
    Pure correlation → adjacency function with a descriptive name.

    Attributes:
        name: Network type or a caller-chosen label for custom transforms
        power: Soft-thresholding power (None for custom transforms)
        function: Vectorized transform applied elementwise
    """

    name: str
    power: float | None
    function: Callable[[np.ndarray], np.ndarray]

    @classmethod
    def from_name(cls, network_type: str = "unsigned", power: float | None = None) -> AdjacencyTransform:
        """Build a WGCNA-style transform; ``power=None`` selects the type's default."""
        key = network_type.replace("_", " ").lower()
        if key not in _BUILDERS:
            raise ConfigurationError(
                f"Unknown network type {network_type!r}; expected one of {NETWORK_TYPES}"
            )
        if power is None:
            power = DEFAULT_POWERS[key]
        if power <= 0:
            raise ConfigurationError(f"Soft-thresholding power must be positive, got {power}")
        return cls(name=key, power=float(power), function=_BUILDERS[key](float(power)))

    @classmethod
    def custom(cls, function: Callable[[np.ndarray], np.ndarray], name: str = "custom") -> AdjacencyTransform:
        if not callable(function):
            raise ConfigurationError(f"Adjacency function must be callable, got {type(function)}")
        return cls(name=name, power=None, function=function)

    def __call__(self, cor: np.ndarray) -> np.ndarray:
        return np.asarray(self.function(np.asarray(cor, dtype=np.float64)), dtype=np.float64)

    def describe(self) -> dict:
        return {"network_type": self.name, "power": self.power}
