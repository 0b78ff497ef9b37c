from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping

# keys that never change sessionized output
_NON_INFLUENTIAL = {"paths", "logging", "run_tag", "workers"}


def _prune(obj: Any) -> Any:
    """Remove non-influential keys recursively."""
    if isinstance(obj, Mapping):
        return {k: _prune(v) for k, v in obj.items() if k not in _NON_INFLUENTIAL}
    if isinstance(obj, list):
        return [_prune(v) for v in obj]
    return obj


def compute_fingerprint(config: Mapping[str, Any]) -> str:
    """Compute a stable fingerprint for influential config parts."""
    payload = _prune(config)
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(serialized.encode("utf-8")).hexdigest()[:10]
