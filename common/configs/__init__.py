"""Config loading utilities for layered YAML configuration."""
from .loader import load_config, ResolvedConfig
from .fingerprint import compute_fingerprint
__all__ = ["load_config", "ResolvedConfig", "compute_fingerprint"]
