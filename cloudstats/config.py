"""Configuration management for the point cloud statistics engine."""

import os
from dataclasses import dataclass, replace
from typing import Optional

# Numerical constants
SINGULAR_TOLERANCE = 1e-12
DEFAULT_CHUNK_SIZE = 4096
NN_SELF_NEIGHBORS = 2

# Environment overrides
ENV_PREFIX = "CLOUDSTATS_"

BACKEND_NAMES = ("auto", "numpy", "cupy", "torch", "numba")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    """
    Execution settings shared by the distance engine and the accelerator path.

    Attributes:
        backend: Device backend for the accelerated mean/covariance
            ("auto" picks the best available accelerator, else NumPy)
        auto_sync: Re-sync the positions mirror before every accelerated
            computation. When False the caller must sync explicitly.
        n_jobs: Worker count for per-point distance queries (1 = serial,
            -1 = all cores), forwarded to joblib
        chunk_size: Number of points handled by one parallel task
        singular_tolerance: Relative eigenvalue threshold below which a
            covariance matrix is treated as singular
        parallel_backend: joblib backend name
    """
    backend: str = "auto"
    auto_sync: bool = True
    n_jobs: int = 1
    chunk_size: int = DEFAULT_CHUNK_SIZE
    singular_tolerance: float = SINGULAR_TOLERANCE
    parallel_backend: str = "loky"

    def __post_init__(self):
        if self.backend not in BACKEND_NAMES:
            raise ValueError(
                f"Unknown backend {self.backend!r}, expected one of {BACKEND_NAMES}"
            )
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.singular_tolerance < 0:
            raise ValueError("singular_tolerance must be non-negative")

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "EngineConfig":
        """
        Build a config from CLOUDSTATS_* environment variables.

        Recognized: CLOUDSTATS_BACKEND, CLOUDSTATS_AUTO_SYNC, CLOUDSTATS_N_JOBS.
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        if ENV_PREFIX + "BACKEND" in env:
            kwargs["backend"] = env[ENV_PREFIX + "BACKEND"].strip().lower()
        if ENV_PREFIX + "AUTO_SYNC" in env:
            kwargs["auto_sync"] = _env_bool(env[ENV_PREFIX + "AUTO_SYNC"])
        if ENV_PREFIX + "N_JOBS" in env:
            kwargs["n_jobs"] = int(env[ENV_PREFIX + "N_JOBS"])
        return cls(**kwargs)

    def with_overrides(self, **changes) -> "EngineConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


DEFAULT_CONFIG = EngineConfig()
