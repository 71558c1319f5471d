"""Driver registry and custom driver loading."""

import importlib
import importlib.util
from pathlib import Path
from types import ModuleType

from rlm_eval.config import DriverSettings
from rlm_eval.drivers import LocalDriver, SshDriver
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.protocols import Driver, DriverFactory

# Attributes a custom driver module may expose, in lookup order
CUSTOM_FACTORY_ATTR = "create_driver"
CUSTOM_INSTANCE_ATTR = "driver"


def _create_local(settings: DriverSettings) -> Driver:
    return LocalDriver(settings)


def _create_ssh(settings: DriverSettings) -> Driver:
    return SshDriver(settings)


DRIVERS: dict[str, DriverFactory] = {
    # default driver, runs the agent binary on this machine
    "local": _create_local,
    # remote host over SSH; requires host in settings
    "ssh": _create_ssh,
}


def register_driver(name: str, factory: DriverFactory) -> None:
    """Register a driver factory under ``name`` (overrides any existing entry)."""
    DRIVERS[name] = factory


def _ensure_driver(candidate: object, source: str) -> Driver:
    call = getattr(candidate, "call", None)
    if not callable(call):
        raise FatalEvalError(
            f"Custom driver from {source!r} does not implement call(query, context, options)"
        )
    return candidate  # type: ignore[return-value]


def _import_module_from_file(path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"rlm_eval_custom_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise FatalEvalError(f"Cannot import custom driver file {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_custom_driver(target: str, settings: DriverSettings) -> Driver:
    """Load an operator-supplied driver.

    ``target`` is either ``package.module:attr`` (attr is a factory taking
    DriverSettings, or a driver instance) or a module path / ``.py`` file
    exposing ``create_driver(settings)`` or a module-level ``driver``.
    """
    module_ref, _, attr = target.partition(":")
    try:
        path = Path(module_ref)
        if path.suffix == ".py":
            if not path.exists():
                raise FatalEvalError(f"Custom driver file {path} does not exist")
            module = _import_module_from_file(path.resolve())
        else:
            module = importlib.import_module(module_ref)
    except FatalEvalError:
        raise
    except Exception as e:
        raise FatalEvalError(f"Error loading custom driver {target!r}: {e}") from e

    if attr:
        if not hasattr(module, attr):
            raise FatalEvalError(f"Custom driver module {module_ref!r} has no {attr!r}")
        candidate = getattr(module, attr)
    elif hasattr(module, CUSTOM_FACTORY_ATTR):
        candidate = getattr(module, CUSTOM_FACTORY_ATTR)
    elif hasattr(module, CUSTOM_INSTANCE_ATTR):
        candidate = getattr(module, CUSTOM_INSTANCE_ATTR)
    else:
        raise FatalEvalError(
            f"Custom driver at {target!r} must export a {CUSTOM_FACTORY_ATTR}() "
            f"function or a {CUSTOM_INSTANCE_ATTR!r} object"
        )

    # Instances are used as-is; classes and factory functions get the settings
    if hasattr(candidate, "call") and not isinstance(candidate, type):
        return _ensure_driver(candidate, target)
    if not callable(candidate):
        return _ensure_driver(candidate, target)
    try:
        instance = candidate(settings)
    except FatalEvalError:
        raise
    except Exception as e:
        raise FatalEvalError(f"Custom driver factory {target!r} failed: {e}") from e
    return _ensure_driver(instance, target)


def create_driver(name: str, settings: DriverSettings) -> Driver:
    """Return a driver for a registered name, or load it as a custom driver."""
    factory = DRIVERS.get(name)
    if factory is not None:
        return factory(settings)
    if ":" in name or name.endswith(".py") or "." in name:
        return load_custom_driver(name, settings)
    raise FatalEvalError(
        f"Unknown driver: {name!r}. Expected one of {sorted(DRIVERS)} "
        f"or an import path like 'package.module:create_driver'."
    )
