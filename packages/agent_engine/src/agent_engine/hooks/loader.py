"""Load hook modules from files or dotted module names and attach them to a bus."""

from __future__ import annotations

import importlib
import importlib.util
import logging
import sys
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

from agent_engine.hooks.bus import HookBus
from agent_engine.hooks.events import LEGACY_EVENT_NAMES, is_hook_event_name
from agent_engine.utils import maybe_await

logger = logging.getLogger(__name__)

HookInstaller = Callable[[HookBus], Any]
HookModule = HookInstaller | Mapping[str, Any]

_EXPORT_NAMES = ("install", "hooks", "HOOKS")


def resolve_hook_path(entry: str, directory: str | Path | None = None) -> Path | None:
    """Return the file backing ``entry`` when it names a path, else None.

    Directories resolve to their ``__init__.py`` or ``hooks.py``.
    """
    looks_like_path = entry.startswith(".") or entry.endswith(".py") or Path(entry).is_absolute()
    if not looks_like_path:
        return None
    base = Path(directory) if directory is not None else Path.cwd()
    candidate = (base / entry).resolve()
    if not candidate.exists() and not candidate.suffix:
        candidate = candidate.with_suffix(".py")
    if not candidate.exists():
        message = f"Hook module path does not exist: {candidate}"
        raise FileNotFoundError(message)
    if candidate.is_dir():
        for name in ("__init__.py", "hooks.py"):
            probe = candidate / name
            if probe.exists():
                return probe
        message = f"No hook entry found in {candidate}. Add an __init__.py or hooks.py"
        raise FileNotFoundError(message)
    return candidate


def _import_file(path: Path) -> ModuleType:
    module_name = f"agent_engine_hooks_{path.stem}_{abs(hash(str(path)))}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        message = f"Cannot import hook module from {path}"
        raise ImportError(message)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        raise
    return module


def _module_export(module: ModuleType) -> HookModule:
    for name in _EXPORT_NAMES:
        value = getattr(module, name, None)
        if value is not None:
            return value
    message = f"Hook module {module.__name__} exports neither install() nor a hooks mapping"
    raise ImportError(message)


class HooksLoader:
    """Resolve, import and attach hook modules."""

    def import_hook_module(self, entry: str, directory: str | Path | None = None) -> HookModule:
        """Import ``entry`` and return its installer or event mapping."""
        path = resolve_hook_path(entry, directory)
        module = _import_file(path) if path is not None else importlib.import_module(entry)
        return _module_export(module)

    def attach_object_hooks(self, bus: HookBus, module: Mapping[str, Any]) -> list[str]:
        """Register each ``event -> listener`` pair; return the attached event names."""
        attached: list[str] = []
        for event, handler in module.items():
            if handler is None:
                continue
            if not callable(handler):
                logger.warning('Skipping hook "%s" because the handler is not callable', event)
                continue
            resolved = str(event)
            if not is_hook_event_name(resolved) and resolved in LEGACY_EVENT_NAMES:
                translated = LEGACY_EVENT_NAMES[resolved].value
                logger.warning('Hook event "%s" is deprecated; use "%s" instead', resolved, translated)
                resolved = translated
            if not is_hook_event_name(resolved):
                logger.warning('Skipping hook "%s" because the event is not recognised', event)
                continue
            bus.on(resolved, handler)
            attached.append(resolved)
        return attached

    async def install(self, bus: HookBus, module: HookModule) -> None:
        """Attach ``module`` to ``bus``; installers may be sync or async."""
        if isinstance(module, Mapping):
            self.attach_object_hooks(bus, module)
            return
        if callable(module):
            await maybe_await(module(bus))
            return
        message = f"Unsupported hook module type: {type(module).__name__}"
        raise TypeError(message)

    async def load(
        self,
        bus: HookBus,
        entries: Iterable[str],
        directory: str | Path | None = None,
    ) -> None:
        """Import and install every entry in order."""
        for entry in entries:
            module = self.import_hook_module(entry, directory)
            await self.install(bus, module)
            logger.debug("Installed hook module %s", entry)
