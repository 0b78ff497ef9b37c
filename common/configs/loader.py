from __future__ import annotations

import json
import os
import pathlib
import re
from dataclasses import dataclass
from typing import AbstractSet, Any, Iterable, Mapping, MutableMapping

import jsonschema
import yaml

from .fingerprint import compute_fingerprint

ROOT = pathlib.Path(__file__).resolve().parents[2]
CONFIG_ROOT = ROOT / "configs"
SCHEMA_DIR = pathlib.Path(__file__).resolve().parent / "schemas"


class IncludeLoader(yaml.SafeLoader):
    pass


def _construct_include(loader: yaml.SafeLoader, node: yaml.Node) -> Any:
    rel_path = loader.construct_scalar(node)
    include_path = pathlib.Path(loader.name).parent / rel_path
    with include_path.open("r", encoding="utf-8") as f:
        return yaml.load(f, IncludeLoader)


IncludeLoader.add_constructor("!include", _construct_include)


@dataclass
class ResolvedConfig:
    resolved: Mapping[str, Any]
    sources: list[str]
    fingerprint: str
    schema_version: str

    def section(self, name: str) -> Mapping[str, Any]:
        return self.resolved.get(name) or {}


_REF_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_yaml(path: pathlib.Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        loader = IncludeLoader(f)
        loader.name = str(path)
        try:
            data = loader.get_single_data()
        finally:
            loader.dispose()
    return data or {}


def _merge(base: Any, override: Any) -> Any:
    if override is None:
        return None
    if isinstance(base, list) and isinstance(override, Mapping) and "+extend" in override:
        return base + list(override.get("+extend") or [])
    if isinstance(base, Mapping) and isinstance(override, Mapping):
        result: dict[str, Any] = dict(base)
        for k, v in override.items():
            if v is None:
                result.pop(k, None)
                continue
            if k == "+extend":
                continue
            if k in result:
                merged = _merge(result[k], v)
                if merged is None:
                    result.pop(k, None)
                else:
                    result[k] = merged
            else:
                result[k] = v
        return result
    if isinstance(override, list):
        return list(override)
    return override


def _merge_many(dicts: Iterable[Mapping[str, Any]]) -> Mapping[str, Any]:
    merged: Any = {}
    for d in dicts:
        merged = _merge(merged, d)
    return merged


def _parse_value(val: str) -> Any:
    lowered = val.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return json.loads(val)
    except ValueError:
        pass
    return val


def _apply_env_overrides(prefix: str, literal_keys: AbstractSet[str] = frozenset()) -> Mapping[str, Any]:
    """Turn ``SESS_sessionize__gap_threshold=5min`` into a nested override."""
    result: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].strip("_")
        parts = [p for p in path.split("__") if p]
        if not parts:
            continue
        cursor: MutableMapping[str, Any] = result
        for p in parts[:-1]:
            cursor = cursor.setdefault(p, {})  # type: ignore[assignment]
        cursor[parts[-1]] = value if parts[-1] in literal_keys else _parse_value(value)
    return result


def _apply_cli_overrides(overrides: Mapping[str, Any], literal_keys: AbstractSet[str] = frozenset()) -> Mapping[str, Any]:
    def cast(obj: Any, key: Any = None) -> Any:
        if isinstance(obj, str):
            return obj if key in literal_keys else _parse_value(obj)
        if isinstance(obj, Mapping):
            return {k: cast(v, k) for k, v in obj.items()}
        return obj

    return cast(overrides or {})


def _resolve_refs(config: Any, full: Mapping[str, Any]) -> Any:
    if isinstance(config, str):
        def replace(match: re.Match[str]) -> str:
            expr = match.group(1)
            if expr.startswith("ENV:"):
                name_default = expr[4:]
                if "|" in name_default:
                    name, default = name_default.split("|", 1)
                else:
                    name, default = name_default, ""
                return os.environ.get(name, default)
            cursor: Any = full
            for part in expr.split("."):
                cursor = cursor.get(part) if isinstance(cursor, Mapping) else None
            return str(cursor) if cursor is not None else ""

        return _REF_PATTERN.sub(replace, config)
    if isinstance(config, Mapping):
        return {k: _resolve_refs(v, full) for k, v in config.items()}
    if isinstance(config, list):
        return [_resolve_refs(v, full) for v in config]
    return config


def _validate(resolved: Mapping[str, Any]) -> None:
    schema_files = {
        "logging": SCHEMA_DIR / "core_logging.json",
        "sessionize": SCHEMA_DIR / "sessionize.json",
    }
    for key, schema_path in schema_files.items():
        section = resolved.get(key)
        if section is None:
            continue
        with schema_path.open("r", encoding="utf-8") as f:
            schema = json.load(f)
        jsonschema.validate(section, schema)


def load_config(
    profile: str | pathlib.Path | None = None,
    overrides_paths: list[pathlib.Path] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
    env_prefix: str = "SESS_",
    config_root: pathlib.Path | None = None,
    literal_keys: Iterable[str] = (),
) -> ResolvedConfig:
    """Resolve the layered config: defaults, profile, local, env, CLI.

    Later layers win. A ``null`` value in a layer deletes the key, a mapping
    of the form ``{"+extend": [...]}`` appends to a list from earlier layers.
    String values of env and CLI overrides are parsed as JSON scalars except
    under ``literal_keys``, which stay strings (column names like ``"2024"``).
    """
    root = config_root or CONFIG_ROOT
    overrides_paths = overrides_paths or []
    layers: list[Mapping[str, Any]] = []
    sources: list[str] = []

    version_path = root / "core" / "version.yaml"
    version_info = _load_yaml(version_path) if version_path.exists() else {}
    schema_version = str(version_info.get("config_schema_version", "unknown"))

    base_files = [
        root / "core" / "defaults.yaml",
        root / "core" / "logging.yaml",
        root / "sessionize" / "sessionize.yaml",
    ]
    if profile:
        if isinstance(profile, pathlib.Path):
            base_files.append(profile)
        else:
            base_files.append(root / "sessionize" / "profiles" / f"{profile}.yaml")
    base_files.append(root / "overrides" / "local.yaml")
    base_files.extend(overrides_paths)

    for path in base_files:
        if path.exists():
            layers.append(_load_yaml(path))
            sources.append(str(path))
    literal = frozenset(literal_keys)
    layers.append(_apply_env_overrides(env_prefix, literal))
    layers.append(_apply_cli_overrides(cli_overrides or {}, literal))

    merged = _merge_many(layers)
    resolved = _resolve_refs(merged, merged)
    _validate(resolved)
    fingerprint = compute_fingerprint(resolved)
    return ResolvedConfig(resolved=resolved, sources=sources, fingerprint=fingerprint, schema_version=schema_version)
