"""
Error types raised by the statistics engine.

Input degeneracies (empty clouds, missing neighbors) are not errors: they
produce documented defaults and a diagnostic. Only numerical singularities
and accelerator failures surface as exceptions.
"""

from typing import Optional

import numpy as np


class CloudStatsError(Exception):
    """Base class for all cloudstats errors."""


class SingularCovarianceError(CloudStatsError, ValueError):
    """
    Raised when a covariance matrix cannot be inverted.

    Attributes:
        covariance: The offending 3x3 matrix
    """

    def __init__(self, message: str, covariance: Optional[np.ndarray] = None):
        super().__init__(message)
        self.covariance = covariance


class DeviceError(CloudStatsError, RuntimeError):
    """Raised when the accelerated path cannot run (no device, alloc/copy failure)."""
