"""Runtime settings read from `BEACONNAV_*` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MEASURED_POWER = -69.0
DEFAULT_PATH_LOSS_EXPONENT = 2.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class FusionSettings:
    """Timing and ranging parameters for beacon signal fusion (seconds, dBm)."""

    liveness_ttl_s: float = 5.0
    stability_window_s: float = 1.0
    node_timeout_s: float = 4.0
    map_timeout_s: float = 180.0
    measured_power: float = DEFAULT_MEASURED_POWER
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT

    def __post_init__(self) -> None:
        for name in ("liveness_ttl_s", "stability_window_s", "node_timeout_s", "map_timeout_s"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.path_loss_exponent <= 0:
            raise ValueError("path_loss_exponent must be > 0")

    @classmethod
    def from_env(cls) -> "FusionSettings":
        return cls(
            liveness_ttl_s=_env_float("BEACONNAV_LIVENESS_TTL_S", 5.0),
            stability_window_s=_env_float("BEACONNAV_STABILITY_WINDOW_S", 1.0),
            node_timeout_s=_env_float("BEACONNAV_NODE_TIMEOUT_S", 4.0),
            map_timeout_s=_env_float("BEACONNAV_MAP_TIMEOUT_S", 180.0),
            measured_power=_env_float("BEACONNAV_MEASURED_POWER", DEFAULT_MEASURED_POWER),
            path_loss_exponent=_env_float("BEACONNAV_PATH_LOSS_EXPONENT", DEFAULT_PATH_LOSS_EXPONENT),
        )


def grid_search_factor() -> int:
    """Iteration cap multiplier for grid searches (cells * factor)."""
    return int(_env_float("BEACONNAV_GRID_SEARCH_FACTOR", 4))
