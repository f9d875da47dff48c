"""
Declaration graph.

Purpose: Holds the typed resource declarations for one deployment and the
reference edges between them, in the order the provisioning engine must
create them.

Main class: DeclarationGraph with declare()/lookup()/export() for building,
topological_order() for ordering, to_document()/render_json() for the
engine hand-off and apply_resolved_outputs() for feeding resolved values back.

Key features: references are discovered from Deferred values inside property
bags, so wiring a subnet to a VPC is just passing ``vpc.output("id")``.
Rendering is deterministic: identical inputs give byte-identical JSON.
"""
import hashlib
import heapq
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from platform_infra.exceptions import (
    CyclicReferenceError,
    DuplicateDeclarationError,
    UnknownReferenceError,
)
from platform_infra.graph.deferred import (
    Deferred,
    Lookup,
    ResourceOutput,
    collect_references,
    render_value,
)

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


@dataclass
class ResourceDeclaration:
    """A named, typed resource and its property bag."""
    name: str
    provider: str
    kind: str
    properties: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    _outputs: Dict[str, ResourceOutput] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def output(self, attribute: str) -> ResourceOutput:
        """Get the deferred value of an attribute assigned at apply time."""
        if attribute not in self._outputs:
            self._outputs[attribute] = ResourceOutput(self.name, attribute)
        return self._outputs[attribute]

    @property
    def id(self) -> ResourceOutput:
        return self.output("id")

    @property
    def arn(self) -> ResourceOutput:
        return self.output("arn")

    def references(self) -> List[str]:
        """Names of declarations this one must be created after."""
        names = collect_references(self.properties)
        for name in self.depends_on:
            if name not in names:
                names.append(name)
        return names

    def to_dict(self, reveal_secrets: bool = False) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider,
            "type": self.kind,
            "properties": render_value(self.properties, reveal_secrets),
            "dependsOn": self.references(),
        }


class DeclarationGraph:
    """Ordered set of declarations plus lookups and stack outputs."""

    def __init__(self, project: str, topology: str):
        self.project = project
        self.topology = topology
        self._declarations: Dict[str, ResourceDeclaration] = {}
        self._order: Dict[str, int] = {}
        self._lookups: Dict[str, Lookup] = {}
        self.outputs: Dict[str, Any] = {}

    def declare(self, name: str, provider: str, kind: str,
                properties: Optional[Dict[str, Any]] = None,
                depends_on: Optional[List[str]] = None) -> ResourceDeclaration:
        """Create a declaration and add it to the graph."""
        declaration = ResourceDeclaration(
            name=name,
            provider=provider,
            kind=kind,
            properties=properties or {},
            depends_on=list(depends_on or []),
        )
        return self.add(declaration)

    def add(self, declaration: ResourceDeclaration) -> ResourceDeclaration:
        """Add a declaration whose references are already in the graph."""
        if declaration.name in self._declarations:
            raise DuplicateDeclarationError(f"Declaration already exists: {declaration.name}")

        unknown = [name for name in declaration.references() if name not in self._declarations]
        if unknown:
            raise UnknownReferenceError(
                f"{declaration.name} references undeclared resources: {', '.join(unknown)}"
            )

        self._order[declaration.name] = len(self._order)
        self._declarations[declaration.name] = declaration
        logger.debug(f"Declared {declaration.kind}: {declaration.name}")
        return declaration

    def lookup(self, name: str, kind: str, args: Optional[Dict[str, Any]] = None,
               attribute: Optional[str] = None, secret: bool = False) -> Lookup:
        """Register (or reuse) a data-source read resolved by the engine."""
        if name in self._lookups:
            return self._lookups[name]
        unknown = [ref for ref in collect_references(args or {}) if ref not in self._declarations]
        if unknown:
            raise UnknownReferenceError(
                f"Lookup {name} references undeclared resources: {', '.join(unknown)}"
            )
        cell = Lookup(name, kind, args, attribute=attribute, secret=secret)
        self._lookups[name] = cell
        return cell

    def export(self, key: str, value: Any) -> None:
        """Publish a stack output for downstream tooling."""
        self.outputs[key] = value

    def get(self, name: str) -> ResourceDeclaration:
        return self._declarations[name]

    def __contains__(self, name: str) -> bool:
        return name in self._declarations

    def __len__(self) -> int:
        return len(self._declarations)

    def __iter__(self) -> Iterator[ResourceDeclaration]:
        return iter(self.topological_order())

    def names(self) -> List[str]:
        return list(self._declarations)

    def of_kind(self, kind: str) -> List[ResourceDeclaration]:
        return [d for d in self._declarations.values() if d.kind == kind]

    def dependency_closure(self, name: str) -> List[str]:
        """All declarations ``name`` depends on, directly or transitively."""
        seen: List[str] = []
        stack = list(self.get(name).references())
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.append(current)
            if current in self._declarations:
                stack.extend(self._declarations[current].references())
        return seen

    def topological_order(self) -> List[ResourceDeclaration]:
        """Kahn's algorithm; ties keep declaration order."""
        edges = {name: decl.references() for name, decl in self._declarations.items()}
        for name, refs in edges.items():
            unknown = [ref for ref in refs if ref not in self._declarations]
            if unknown:
                raise UnknownReferenceError(
                    f"{name} references undeclared resources: {', '.join(unknown)}"
                )

        remaining = {name: len(refs) for name, refs in edges.items()}
        dependents: Dict[str, List[str]] = {name: [] for name in edges}
        for name, refs in edges.items():
            for ref in refs:
                dependents[ref].append(name)

        ready = [(self._order[name], name) for name, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        ordered: List[ResourceDeclaration] = []
        while ready:
            _, name = heapq.heappop(ready)
            ordered.append(self._declarations[name])
            for dependent in dependents[name]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (self._order[dependent], dependent))

        if len(ordered) != len(self._declarations):
            stuck = sorted(name for name, count in remaining.items() if count > 0)
            raise CyclicReferenceError(f"Reference cycle between: {', '.join(stuck)}")
        return ordered

    def pending_values(self) -> List[Deferred]:
        """Root cells still waiting on the engine."""
        pending: List[Deferred] = []
        for declaration in self._declarations.values():
            pending.extend(cell for cell in declaration._outputs.values() if not cell.is_resolved)
        pending.extend(cell for cell in self._lookups.values() if not cell.is_resolved)
        return pending

    def to_document(self, reveal_secrets: bool = False) -> Dict[str, Any]:
        """Build the engine hand-off document."""
        return {
            "version": DOCUMENT_VERSION,
            "project": self.project,
            "topology": self.topology,
            "declarations": [d.to_dict(reveal_secrets) for d in self.topological_order()],
            "lookups": [
                cell.describe() for cell in sorted(self._lookups.values(), key=lambda c: c.name)
            ],
            "outputs": render_value(self.outputs, reveal_secrets),
        }

    def render_json(self, reveal_secrets: bool = False) -> str:
        return json.dumps(self.to_document(reveal_secrets), indent=2, sort_keys=True)

    def digest(self) -> str:
        """Stable fingerprint of the rendered (secret-free) document."""
        return hashlib.sha256(self.render_json().encode("utf-8")).hexdigest()

    def apply_resolved_outputs(self, resolved: Dict[str, Any]) -> int:
        """Feed values returned by the provisioning engine back into the graph.

        Args:
            resolved: {"resources": {name: {attr: value}}, "lookups": {name: value}}

        Returns:
            Number of root cells resolved
        """
        count = 0
        for name, attributes in (resolved.get("resources") or {}).items():
            if name not in self._declarations:
                logger.warning(f"Ignoring outputs for undeclared resource: {name}")
                continue
            declaration = self._declarations[name]
            for attribute, value in attributes.items():
                declaration.output(attribute).resolve(value)
                count += 1

        for name, value in (resolved.get("lookups") or {}).items():
            if name not in self._lookups:
                logger.warning(f"Ignoring value for unknown lookup: {name}")
                continue
            self._lookups[name].resolve(value)
            count += 1

        remaining = len(self.pending_values())
        logger.info(f"Resolved {count} values, {remaining} still pending")
        return count
