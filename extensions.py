"""Runtime services for Stackowey: lifecycle hooks, step watchers, extension loading.

An extension is a Python file that defines ``stackowey_register(ext)``. The
host calls it once with an :class:`ExtensionAPI` bound to the
:class:`RuntimeServices` the interpreter will use. Through it the extension
subscribes to interpreter events and watches executed steps.

Every event handler is called as ``handler(interpreter, *payload)``; the
payload of each event is listed in :data:`EVENT_PAYLOADS`.
"""

from __future__ import annotations

import importlib.util
import os
import sys
import zlib
from dataclasses import dataclass, field
from types import ModuleType
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

if TYPE_CHECKING:
    from pointer import Direction


EXTENSION_API_VERSION = 1
STKX_SUFFIX = ".stkx"

Cell = Tuple[int, int]
EventHandler = Callable[..., None]
StepHandler = Callable[[Any, "StepEvent"], None]

# event -> names of the values passed after the interpreter
EVENT_PAYLOADS: Dict[str, Tuple[str, ...]] = {
    "reset": (),
    "output": ("code", "char"),
    "input": ("line",),
    "halt": ("cell",),
    "error": ("error",),
}


class StackoweyExtensionError(Exception):
    pass


@dataclass(frozen=True)
class ExtensionMetadata:
    name: str
    version: str = "0.0.0"
    requires_api: int = EXTENSION_API_VERSION


@dataclass(frozen=True)
class StepEvent:
    """One executed step, as seen by step watchers."""

    index: int  # steps run since the last reset, this one included
    cell: Cell  # where the opcode was read
    opcode: str
    rule: str
    heading: Direction  # after the opcode ran
    depth: int


@dataclass(frozen=True)
class Hook:
    ext_name: str
    handler: EventHandler
    priority: int = 0


@dataclass(frozen=True)
class StepWatcher:
    name: str
    ext_name: str
    handler: StepHandler
    every_n: int = 1
    opcodes: Optional[FrozenSet[str]] = None

    def wants(self, event: StepEvent) -> bool:
        if self.opcodes is not None:
            return event.opcode in self.opcodes
        return event.index % self.every_n == 0


@dataclass
class HookRegistry:
    _hooks: Dict[str, List[Hook]] = field(default_factory=dict)
    _watchers: List[StepWatcher] = field(default_factory=list)

    def on_event(self, event: str, handler: EventHandler, *, priority: int = 0, ext_name: str = "host") -> None:
        if event not in EVENT_PAYLOADS:
            known = ", ".join(sorted(EVENT_PAYLOADS))
            raise StackoweyExtensionError(f"Unknown event '{event}' (known events: {known})")
        hooks = self._hooks.setdefault(event, [])
        hooks.append(Hook(ext_name=ext_name, handler=handler, priority=priority))
        # Stable sort: equal priorities keep registration order.
        hooks.sort(key=lambda hook: hook.priority, reverse=True)

    def emit(self, event: str, interpreter: Any, *payload: Any) -> None:
        expected = EVENT_PAYLOADS.get(event)
        if expected is None:
            raise StackoweyExtensionError(f"Unknown event '{event}'")
        if len(payload) != len(expected):
            raise StackoweyExtensionError(
                f"Event '{event}' carries ({', '.join(expected)}), got {len(payload)} value(s)"
            )
        for hook in self._hooks.get(event, ()):
            hook.handler(interpreter, *payload)

    def watch(self, watcher: StepWatcher) -> None:
        if watcher.every_n < 1:
            raise StackoweyExtensionError(f"Step watcher '{watcher.name}' needs every_n >= 1")
        if watcher.opcodes is not None and not watcher.opcodes:
            raise StackoweyExtensionError(f"Step watcher '{watcher.name}' watches no opcodes")
        self._watchers.append(watcher)

    def has_watchers(self) -> bool:
        return bool(self._watchers)

    def after_step(self, interpreter: Any, event: StepEvent) -> None:
        for watcher in self._watchers:
            if watcher.wants(event):
                watcher.handler(interpreter, event)


@dataclass
class RuntimeServices:
    metadata: List[ExtensionMetadata] = field(default_factory=list)
    hook_registry: HookRegistry = field(default_factory=HookRegistry)

    def extension_names(self) -> List[str]:
        return [meta.name for meta in self.metadata]


def _register_or_decorate(handler: Optional[Callable[..., None]], register: Callable[[Callable[..., None]], None]):
    if handler is None:
        def deco(fn: Callable[..., None]) -> Callable[..., None]:
            register(fn)
            return fn
        return deco
    register(handler)
    return handler


class ExtensionAPI:
    """What ``stackowey_register`` receives.

    ``on_event``, ``every_n_steps`` and ``on_opcode`` take the handler as an
    argument or work as decorators when it is omitted.
    """

    def __init__(self, *, services: RuntimeServices, ext_name: str) -> None:
        self._services = services
        self.ext_name = ext_name
        self.declared: Optional[ExtensionMetadata] = None

    def metadata(self, *, name: str, version: str = "0.0.0", requires_api: int = EXTENSION_API_VERSION) -> None:
        self.declared = ExtensionMetadata(name=name, version=version, requires_api=requires_api)

    def on_event(self, event: str, handler: Optional[EventHandler] = None, *, priority: int = 0):
        registry = self._services.hook_registry
        return _register_or_decorate(
            handler, lambda fn: registry.on_event(event, fn, priority=priority, ext_name=self.ext_name)
        )

    def every_n_steps(self, every_n: int, handler: Optional[StepHandler] = None, *, name: str = ""):
        def register(fn: StepHandler) -> None:
            self._services.hook_registry.watch(
                StepWatcher(name=name or fn.__name__, ext_name=self.ext_name, handler=fn, every_n=every_n)
            )
        return _register_or_decorate(handler, register)

    def on_opcode(self, opcodes: Iterable[str], handler: Optional[StepHandler] = None, *, name: str = ""):
        chars = frozenset(opcodes)
        if any(len(char) != 1 for char in chars):
            raise StackoweyExtensionError("on_opcode expects single-character opcodes")

        def register(fn: StepHandler) -> None:
            self._services.hook_registry.watch(
                StepWatcher(name=name or fn.__name__, ext_name=self.ext_name, handler=fn, opcodes=chars)
            )
        return _register_or_decorate(handler, register)


def _module_name(path: str) -> str:
    stem = os.path.splitext(os.path.basename(path))[0]
    safe = "".join(ch if ch.isalnum() else "_" for ch in stem)
    return f"stackowey_ext_{safe}_{zlib.crc32(path.encode('utf-8')):08x}"


def load_extension_module(path: str) -> ModuleType:
    """Import the extension file at *path* under a private module name.

    The module is registered in ``sys.modules`` while it executes, so
    dataclasses and pickling inside it can find it. A failed import leaves
    no trace there and surfaces as :class:`StackoweyExtensionError`.
    """
    path = os.path.abspath(path)
    if not os.path.isfile(path):
        raise StackoweyExtensionError(f"Extension not found: {path}")
    name = _module_name(path)
    if name in sys.modules:
        return sys.modules[name]
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise StackoweyExtensionError(f"Cannot load extension module: {path}")
    module = importlib.util.module_from_spec(spec)

    # Sibling imports resolve against the extension's own directory.
    ext_dir = os.path.dirname(path)
    sys.path.insert(0, ext_dir)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(name, None)
        raise StackoweyExtensionError(f"Extension {path} failed to load: {exc}") from exc
    finally:
        if sys.path and sys.path[0] == ext_dir:
            del sys.path[0]
    return module


def read_stkx(pointer_file: str) -> List[str]:
    """Return the extension paths listed in a ``.stkx`` file.

    One path per line; ``#`` starts a comment; relative paths resolve
    against the directory of the ``.stkx`` file.
    """
    try:
        with open(pointer_file, "r", encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise StackoweyExtensionError(f"Cannot read extension list {pointer_file}: {exc}") from exc
    base = os.path.dirname(os.path.abspath(pointer_file))
    entries = (line.partition("#")[0].strip() for line in text.splitlines())
    return [os.path.normpath(os.path.join(base, entry)) for entry in entries if entry]


def gather_extension_paths(paths: Iterable[str], _open_lists: Optional[Set[str]] = None) -> List[str]:
    """Expand ``.stkx`` lists (nested ones too) into absolute extension paths, first occurrence wins."""
    open_lists: Set[str] = set() if _open_lists is None else _open_lists
    gathered: List[str] = []
    for path in paths:
        resolved = os.path.abspath(path)
        if not resolved.lower().endswith(STKX_SUFFIX):
            gathered.append(resolved)
            continue
        if resolved in open_lists:
            raise StackoweyExtensionError(f"Extension list includes itself: {resolved}")
        open_lists.add(resolved)
        gathered.extend(gather_extension_paths(read_stkx(resolved), open_lists))
        open_lists.discard(resolved)
    return list(dict.fromkeys(gathered))


def build_default_services() -> RuntimeServices:
    return RuntimeServices()


def register_extension(services: RuntimeServices, module: ModuleType, path: str) -> ExtensionMetadata:
    requires = getattr(module, "STACKOWEY_EXTENSION_API_VERSION", EXTENSION_API_VERSION)
    if requires != EXTENSION_API_VERSION:
        raise StackoweyExtensionError(
            f"Extension {path} requires API {requires}, this interpreter provides {EXTENSION_API_VERSION}"
        )
    register = getattr(module, "stackowey_register", None)
    if not callable(register):
        raise StackoweyExtensionError(f"Extension {path} must define a callable stackowey_register(ext)")
    ext_name = str(getattr(module, "STACKOWEY_EXTENSION_NAME", os.path.splitext(os.path.basename(path))[0]))
    api = ExtensionAPI(services=services, ext_name=ext_name)
    try:
        register(api)
    except StackoweyExtensionError:
        raise
    except Exception as exc:
        raise StackoweyExtensionError(f"Extension {ext_name} failed to register: {exc}") from exc
    meta = api.declared or ExtensionMetadata(name=ext_name, requires_api=requires)
    services.metadata.append(meta)
    return meta


def load_runtime_services(paths: Iterable[str], services: Optional[RuntimeServices] = None) -> RuntimeServices:
    services = services or build_default_services()
    for path in gather_extension_paths(paths):
        register_extension(services, load_extension_module(path), path)
    return services
