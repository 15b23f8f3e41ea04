"""
Extension protocol for Servess framework.

An extension is an object with a ``name`` and any subset of the hooks
listed below. Hooks are looked up by attribute, so extensions do not
need to subclass :class:`Extension`.

Lifecycle hooks (return values ignored):
    on_server_attach(app, scope)     ASGI lifespan startup
    on_incoming_message(app)         before the message context exists
    on_message(ctx, app)             after the message context is decorated
    on_message_handled(ctx, app)     after the response was sent
    prepare_router_context(router)   before any router decoration
    prepare_message_context(ctx)     before any message decoration

Decoration hooks (return a mapping of capabilities, or None):
    decorate_application(app)
    decorate_router_context(router)
    decorate_route_listener(listener)
    decorate_message_context(ctx)

Decoration results are merged into the target's :class:`Capabilities`
in installation order, so a later extension overrides an earlier one.
"""

import importlib
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeAlias, TypeVar, overload

from servess._invoke import invoke
from servess.exceptions import ExtensionError

logger = logging.getLogger("servess.extensions")

T = TypeVar("T")
SetupT = TypeVar("SetupT")


@dataclass(frozen=True, slots=True)
class CapabilityKey(Generic[T]):
    """
    Typed name for a capability an extension contributes.

    Usage:
        USER: CapabilityKey[User] = CapabilityKey("user")
        ...
        user = ctx.capabilities[USER]
    """

    name: str

    def __str__(self) -> str:
        return self.name


class Capabilities:
    """Registry of extension-contributed values owned by one context object."""

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    @staticmethod
    def _name(key: "CapabilityKey[Any] | str") -> str:
        return key.name if isinstance(key, CapabilityKey) else key

    @overload
    def __getitem__(self, key: CapabilityKey[T]) -> T: ...
    @overload
    def __getitem__(self, key: str) -> Any: ...
    def __getitem__(self, key: "CapabilityKey[Any] | str") -> Any:
        name = self._name(key)
        try:
            return self._values[name]
        except KeyError:
            raise KeyError(f"No extension provides the capability {name!r}") from None

    def get(self, key: "CapabilityKey[Any] | str", default: Any = None) -> Any:
        return self._values.get(self._name(key), default)

    def set(self, key: "CapabilityKey[Any] | str", value: Any) -> None:
        self._values[self._name(key)] = value

    def merge(self, partial: Mapping[Any, Any]) -> None:
        """Shallow last-writer-wins merge of a decoration result."""
        for key, value in partial.items():
            self.set(key, value)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, (CapabilityKey, str)):
            return self._name(key) in self._values
        return False

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Capabilities({sorted(self._values)!r})"


class Decoratable(Protocol):
    """Anything extensions can decorate."""

    capabilities: Capabilities


Decoration: TypeAlias = Mapping[Any, Any] | None


class Extension:
    """
    Optional base class for extensions.

    Subclasses define only the hooks they need; see the module docstring
    for the available hook names and signatures.
    """

    name: str = "extension"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class ExtensionFactory(ABC, Generic[SetupT]):
    """
    Creates one extension instance per application.

    ``setup`` is the application author's callback that receives a setup
    context (usually an options object) to specialize the instance.
    """

    name: str

    @abstractmethod
    def create_extension_instance(self, setup: Callable[[SetupT], None]) -> Extension:
        ...


class ConfigurableExtensionFactory(ExtensionFactory[SetupT]):
    """
    Factory for extensions configured through an options object.

    The options object is created with no arguments, handed to the setup
    callback for customization, then passed to the extension constructor.
    """

    def __init__(
        self,
        name: str,
        options_type: Callable[[], SetupT],
        extension_type: Callable[[SetupT], Extension],
    ) -> None:
        self.name = name
        self._options_type = options_type
        self._extension_type = extension_type

    def create_extension_instance(self, setup: Callable[[SetupT], None]) -> Extension:
        options = self._options_type()
        setup(options)
        return self._extension_type(options)


FactoryParam: TypeAlias = (
    ExtensionFactory[Any]
    | Awaitable[ExtensionFactory[Any]]
    | str
    | Any
)


def is_extension_factory(obj: Any) -> bool:
    return isinstance(getattr(obj, "name", None), str) and callable(
        getattr(obj, "create_extension_instance", None)
    )


def import_string(import_string: str) -> Any:
    """
    Resolve ``"module:attribute"`` (or a bare ``"module"``) to an object.

    Raises:
        ExtensionError: If the module or attribute cannot be found.
    """
    module_path, _, attr_name = import_string.partition(":")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ExtensionError(f"Cannot import extension module {module_path!r}: {exc}") from exc
    if not attr_name:
        return module
    try:
        return getattr(module, attr_name)
    except AttributeError as exc:
        raise ExtensionError(f"{module_path!r} has no attribute {attr_name!r}") from exc


async def resolve_factory(param: FactoryParam) -> ExtensionFactory[Any]:
    """
    Turn anything ``install`` accepts into an extension factory.

    Accepts a factory, an awaitable resolving to one, an object (e.g. a
    module) whose ``default`` attribute is one, or an import string.
    """
    if isinstance(param, str):
        param = import_string(param)
    if inspect.isawaitable(param):
        param = await param
    if not is_extension_factory(param):
        param = getattr(param, "default", param)
    if not is_extension_factory(param):
        raise ExtensionError(
            f"Expected an extension factory, got {type(param).__name__}"
        )
    logger.debug("Resolved extension factory %r", param.name)
    return param


# ---------------------------------------------------------------------------
# Hook execution
# ---------------------------------------------------------------------------


def _hooks(extensions: Sequence[Any], hook_name: str) -> Iterator[tuple[Any, Callable[..., Any]]]:
    for extension in list(extensions):
        hook = getattr(extension, hook_name, None)
        if callable(hook):
            yield extension, hook


def _check_decoration(extension: Any, hook_name: str, decoration: Any) -> Decoration:
    if decoration is None or isinstance(decoration, Mapping):
        return decoration
    raise ExtensionError(
        f"{hook_name} of extension {getattr(extension, 'name', extension)!r} "
        f"returned {type(decoration).__name__}, expected a mapping or None"
    )


def _call_sync(extension: Any, hook_name: str, hook: Callable[..., Any], *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        close = getattr(result, "close", None)
        if close is not None:
            close()
        raise ExtensionError(
            f"{hook_name} of extension {getattr(extension, 'name', extension)!r} "
            f"must be synchronous: it runs at route registration time"
        )
    return result


async def do_lifecycle(extensions: Sequence[Any], hook_name: str, *args: Any) -> None:
    """Run a hook on every extension that defines it, ignoring return values."""
    for _, hook in _hooks(extensions, hook_name):
        await invoke(hook, *args)


def do_lifecycle_sync(extensions: Sequence[Any], hook_name: str, *args: Any) -> None:
    for extension, hook in _hooks(extensions, hook_name):
        _call_sync(extension, hook_name, hook, *args)


async def decorate(target: Decoratable, extensions: Sequence[Any], hook_name: str) -> None:
    """Collect every extension's decoration for *target*, then merge them in order."""
    decorations: list[Decoration] = []
    for extension, hook in _hooks(extensions, hook_name):
        decorations.append(_check_decoration(extension, hook_name, await invoke(hook, target)))
    _merge(target, decorations)


def decorate_sync(target: Decoratable, extensions: Sequence[Any], hook_name: str) -> None:
    """Like :func:`decorate`, for objects created during synchronous registration."""
    decorations: list[Decoration] = []
    for extension, hook in _hooks(extensions, hook_name):
        decorations.append(
            _check_decoration(extension, hook_name, _call_sync(extension, hook_name, hook, target))
        )
    _merge(target, decorations)


def _merge(target: Decoratable, decorations: list[Decoration]) -> None:
    for decoration in decorations:
        if decoration:
            target.capabilities.merge(decoration)


async def decorate_application(app: Decoratable, extensions: Sequence[Any]) -> None:
    await decorate(app, extensions, "decorate_application")


def decorate_router_context(router: Decoratable, extensions: Sequence[Any]) -> None:
    do_lifecycle_sync(extensions, "prepare_router_context", router)
    decorate_sync(router, extensions, "decorate_router_context")


async def decorate_root_router(app: Decoratable, extensions: Sequence[Any]) -> None:
    """Router decoration for the application itself, which runs inside ``install`` and may await."""
    await do_lifecycle(extensions, "prepare_router_context", app)
    await decorate(app, extensions, "decorate_router_context")


def decorate_route_listener(listener: Decoratable, extensions: Sequence[Any]) -> None:
    decorate_sync(listener, extensions, "decorate_route_listener")


async def decorate_message_context(ctx: Decoratable, extensions: Sequence[Any]) -> None:
    await do_lifecycle(extensions, "prepare_message_context", ctx)
    await decorate(ctx, extensions, "decorate_message_context")
