"""
Deferred value cells for cloud-assigned values.

A Deferred is an explicit future: it is either PENDING or RESOLVED. Root cells
(resource outputs, lookups) are resolved from outside, usually from the
outputs returned by the provisioning engine. Derived cells are built with
apply()/Deferred.all() and resolve themselves once every input resolves.

Secret taint propagates: a cell derived from a secret is itself secret and is
never rendered as plaintext unless the caller asks for it.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from platform_infra.exceptions import (
    DeferredAlreadyResolvedError,
    DescriptorError,
    UnresolvedValueError,
)

logger = logging.getLogger(__name__)


class DeferredState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class SecretValue:
    """A named secret whose plaintext is only revealed on request."""

    __slots__ = ("name", "_value")

    def __init__(self, name: str, value: str):
        self.name = name
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"SecretValue({self.name!r}, '***')"

    def __str__(self) -> str:
        return f"[secret:{self.name}]"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, SecretValue):
            return NotImplemented
        return self.name == other.name and self._value == other._value

    def __hash__(self) -> int:
        return hash((self.name, self._value))


class Deferred:
    """A value that may not be known until the provisioning engine runs."""

    def __init__(self, label: str, inputs: Iterable["Deferred"] = (),
                 fn: Optional[Callable[..., Any]] = None, secret: bool = False):
        self.label = label
        self._inputs: Tuple[Deferred, ...] = tuple(inputs)
        self._fn = fn
        self._secret = secret or any(cell.is_secret for cell in self._inputs)
        self._state = DeferredState.PENDING
        self._value: Any = None
        self._callbacks: List[Callable[["Deferred"], None]] = []

        if self._inputs:
            if fn is None:
                raise DescriptorError(f"Derived value '{label}' needs a function")
            for cell in self._inputs:
                cell._subscribe(self._on_input_resolved)

    @classmethod
    def resolved(cls, value: Any, label: str = "value", secret: bool = False) -> "Deferred":
        cell = cls(label, secret=secret)
        cell._set(value)
        return cell

    @classmethod
    def from_secret(cls, secret: SecretValue) -> "Deferred":
        """Lift a secret into a resolved, secret-tainted cell."""
        return cls.resolved(secret.reveal(), label=secret.name, secret=True)

    @staticmethod
    def all(*cells: Any, label: str = "all") -> "Deferred":
        """Combine values into one cell resolving to the list of their values."""
        return Deferred(label, inputs=[as_deferred(cell) for cell in cells],
                        fn=lambda *values: list(values))

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def is_resolved(self) -> bool:
        return self._state is DeferredState.RESOLVED

    @property
    def is_secret(self) -> bool:
        return self._secret

    @property
    def is_derived(self) -> bool:
        return bool(self._inputs)

    @property
    def inputs(self) -> Tuple["Deferred", ...]:
        return self._inputs

    @property
    def value(self) -> Any:
        if not self.is_resolved:
            raise UnresolvedValueError(f"Value '{self.label}' is still pending")
        return self._value

    def resolve(self, value: Any) -> None:
        """Resolve a root cell and fire its continuations."""
        if self._inputs:
            raise DescriptorError(f"Derived value '{self.label}' resolves from its inputs")
        if self.is_resolved:
            if self._value == value:
                return
            raise DeferredAlreadyResolvedError(
                f"Value '{self.label}' already resolved to a different value"
            )
        self._set(value)

    def apply(self, fn: Callable[[Any], Any], label: Optional[str] = None) -> "Deferred":
        """Derive a new cell computed from this one once it resolves."""
        return Deferred(label or f"{self.label}.apply", inputs=[self], fn=fn)

    def describe(self) -> Dict[str, Any]:
        """Placeholder used when rendering a pending cell."""
        placeholder = {
            "deferred": self.label,
            "dependsOn": self.references(),
        }
        lookups = [root.name for root in self.roots() if isinstance(root, Lookup)]
        if lookups:
            placeholder["lookups"] = lookups
        return placeholder

    def references(self) -> List[str]:
        """Names of the declarations this cell (transitively) waits on."""
        names: List[str] = []
        self._collect_references(names)
        return names

    def _collect_references(self, names: List[str]) -> None:
        for cell in self._inputs:
            cell._collect_references(names)

    def roots(self) -> List["Deferred"]:
        """Root cells feeding this one, in input order."""
        if not self._inputs:
            return [self]
        found: List[Deferred] = []
        for cell in self._inputs:
            for root in cell.roots():
                if not any(root is seen for seen in found):
                    found.append(root)
        return found

    def _set(self, value: Any) -> None:
        self._value = value
        self._state = DeferredState.RESOLVED
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def _subscribe(self, callback: Callable[["Deferred"], None]) -> None:
        if self.is_resolved:
            callback(self)
        else:
            self._callbacks.append(callback)

    def _on_input_resolved(self, _cell: "Deferred") -> None:
        if self.is_resolved or not all(cell.is_resolved for cell in self._inputs):
            return
        self._set(self._fn(*[cell.value for cell in self._inputs]))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label} {self._state.value}>"


class ResourceOutput(Deferred):
    """An attribute assigned by the engine when a declared resource is applied."""

    def __init__(self, resource_name: str, attribute: str, secret: bool = False):
        super().__init__(f"{resource_name}.{attribute}", secret=secret)
        self.resource_name = resource_name
        self.attribute = attribute

    def describe(self) -> Dict[str, Any]:
        return {"ref": self.resource_name, "attr": self.attribute}

    def _collect_references(self, names: List[str]) -> None:
        if self.resource_name not in names:
            names.append(self.resource_name)


class Lookup(Deferred):
    """A data-source read (account identity, AMI id, tunnel token) done by the engine."""

    def __init__(self, name: str, kind: str, args: Optional[Dict[str, Any]] = None,
                 attribute: Optional[str] = None, secret: bool = False):
        super().__init__(name, secret=secret)
        self.name = name
        self.kind = kind
        self.args = dict(args or {})
        self.attribute = attribute

    def describe(self) -> Dict[str, Any]:
        placeholder = {
            "lookup": self.kind,
            "name": self.name,
            "args": render_value(self.args),
        }
        if self.attribute:
            placeholder["attr"] = self.attribute
        return placeholder

    def _collect_references(self, names: List[str]) -> None:
        for name in collect_references(self.args):
            if name not in names:
                names.append(name)


def as_deferred(value: Any) -> Deferred:
    """Wrap plain values so they can be combined with pending cells."""
    if isinstance(value, Deferred):
        return value
    if isinstance(value, SecretValue):
        return Deferred.from_secret(value)
    return Deferred.resolved(value)


def interpolate(template: str, *values: Any, label: str = "interpolate") -> Any:
    """Format ``template`` with values that may still be pending.

    Returns a plain string when nothing is deferred.
    """
    if not any(isinstance(v, (Deferred, SecretValue)) for v in values):
        return template.format(*values)
    return Deferred.all(*values, label=label).apply(
        lambda parts: template.format(*parts), label=label
    )


def render_value(value: Any, reveal_secrets: bool = False) -> Any:
    """Render a property value into plain JSON-compatible data.

    Pending cells become placeholders; secrets become ``{"secret": name}``
    unless ``reveal_secrets`` is set.
    """
    if isinstance(value, SecretValue):
        return value.reveal() if reveal_secrets else {"secret": value.name}
    if isinstance(value, Deferred):
        if value.is_resolved:
            if value.is_secret and not reveal_secrets:
                return {"secret": value.label}
            return render_value(value.value, reveal_secrets)
        placeholder = value.describe()
        if value.is_secret:
            placeholder["secret"] = True
        return placeholder
    if isinstance(value, dict):
        return {str(key): render_value(item, reveal_secrets) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [render_value(item, reveal_secrets) for item in value]
    return value


def collect_references(value: Any) -> List[str]:
    """Declaration names referenced anywhere inside a property value."""
    names: List[str] = []

    def walk(item: Any) -> None:
        if isinstance(item, Deferred):
            for name in item.references():
                if name not in names:
                    names.append(name)
        elif isinstance(item, dict):
            for key in item:
                walk(item[key])
        elif isinstance(item, (list, tuple)):
            for element in item:
                walk(element)

    walk(value)
    return names
