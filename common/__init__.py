from importlib import import_module

__all__ = [
    "configs",
    "load_config",
    "setup_logging",
    "StageTimer",
]

_ALIASES = {
    "load_config": ("common.configs", "load_config"),
    "setup_logging": ("common.logs", "setup_logging"),
    "StageTimer": ("common.timer", "StageTimer"),
}


def __getattr__(name: str):
    if name == "configs":
        return import_module("common.configs")
    if name in _ALIASES:
        module_name, attr_name = _ALIASES[name]
        return getattr(import_module(module_name), attr_name)
    raise AttributeError(f"module 'common' has no attribute {name}")
