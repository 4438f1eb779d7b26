"""
================================================================================
Compose Descriptor
================================================================================

Read-only view of a Docker Compose file plus Compose-compatible variable
interpolation. The harness never edits a descriptor; it only inspects it to:

    - resolve the image a service runs (for startup error messages)
    - refuse to launch when a required variable (NEO4J_IMAGE, HOST_ROOT) is unbound
    - list the secret files a composition expects on disk

Supported interpolation forms:
    $VAR  ${VAR}  ${VAR:-default}  ${VAR-default}
    ${VAR:?error}  ${VAR?error}  ${VAR:+alt}  ${VAR+alt}  $$ (literal $)

================================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import yaml
from loguru import logger


_VARIABLE_PATTERN = re.compile(
    r"""
    \$(?:
        (?P<escaped>\$)
      | \{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<separator>:?[-?+])(?P<argument>[^}]*))?\}
      | (?P<named>[A-Za-z_][A-Za-z0-9_]*)
    )
    """,
    re.VERBOSE,
)


class DescriptorError(Exception):
    """Raised when a compose descriptor is malformed or cannot be interpolated."""
    pass


def _is_set(name: str, bindings: Mapping[str, str]) -> bool:
    return name in bindings and bindings[name] is not None


def substitute(text: str, bindings: Mapping[str, str]) -> str:
    """
    Interpolate compose variables in text.

    Args:
        text: Raw string from the descriptor
        bindings: Variable values (usually os.environ merged with test bindings)

    Returns:
        Interpolated string

    Raises:
        DescriptorError: For ${VAR:?msg} / ${VAR?msg} when VAR is missing
    """
    def replace(match: re.Match) -> str:
        if match.group("escaped"):
            return "$"

        name = match.group("named") or match.group("braced")
        separator = match.group("separator")
        argument = match.group("argument") or ""
        is_set = _is_set(name, bindings)
        value = str(bindings[name]) if is_set else ""

        if separator is None:
            return value
        if separator == ":-":
            return value if value else argument
        if separator == "-":
            return value if is_set else argument
        if separator == ":+":
            return argument if value else ""
        if separator == "+":
            return argument if is_set else ""

        # ":?" and "?"
        missing = not value if separator == ":?" else not is_set
        if missing:
            raise DescriptorError(
                f"Required variable {name} is missing a value: {argument or 'not set'}"
            )
        return value

    return _VARIABLE_PATTERN.sub(replace, text)


def _walk_strings(node: Any):
    if isinstance(node, str):
        yield node
    elif isinstance(node, dict):
        for key, value in node.items():
            if isinstance(key, str):
                yield key
            yield from _walk_strings(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_strings(item)


def _interpolate(node: Any, bindings: Mapping[str, str]) -> Any:
    if isinstance(node, str):
        return substitute(node, bindings)
    if isinstance(node, dict):
        return {key: _interpolate(value, bindings) for key, value in node.items()}
    if isinstance(node, list):
        return [_interpolate(item, bindings) for item in node]
    return node


@dataclass
class ComposeDescriptor:
    """
    Parsed compose file.

    Attributes:
        path: Location of the descriptor (secret paths are relative to it)
        document: Raw YAML document, not interpolated
    """

    path: Path
    document: Dict[str, Any] = field(repr=False)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ComposeDescriptor":
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise DescriptorError(f"Cannot read compose descriptor {path}: {e}") from e

        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DescriptorError(f"Invalid YAML in compose descriptor {path}: {e}") from e

        if not isinstance(document, dict):
            raise DescriptorError(f"Compose descriptor {path} is not a mapping")
        if not isinstance(document.get("services"), dict) or not document["services"]:
            raise DescriptorError(f"Compose descriptor {path} declares no services")

        return cls(path=path, document=document)

    @property
    def services(self) -> List[str]:
        return list(self.document["services"].keys())

    def service(self, name: str) -> Dict[str, Any]:
        try:
            return self.document["services"][name] or {}
        except KeyError:
            raise DescriptorError(
                f"Service '{name}' not found in {self.path.name}. "
                f"Available: {self.services}"
            ) from None

    def referenced_variables(self) -> Set[str]:
        """Names of every variable referenced anywhere in the descriptor."""
        names: Set[str] = set()
        for text in _walk_strings(self.document):
            for match in _VARIABLE_PATTERN.finditer(text):
                name = match.group("named") or match.group("braced")
                if name:
                    names.add(name)
        return names

    def unbound_variables(self, bindings: Mapping[str, str]) -> Set[str]:
        """
        Variables that would interpolate to nothing.

        A reference with a default (${VAR:-x}, ${VAR-x}) or an alternative
        (${VAR:+x}) never counts as unbound.
        """
        unbound: Set[str] = set()
        for text in _walk_strings(self.document):
            for match in _VARIABLE_PATTERN.finditer(text):
                name = match.group("named") or match.group("braced")
                if not name:
                    continue
                separator = match.group("separator")
                if separator in (":-", "-", ":+", "+"):
                    continue
                if not _is_set(name, bindings):
                    unbound.add(name)
        return unbound

    def render(self, bindings: Mapping[str, str]) -> Dict[str, Any]:
        """Fully interpolated copy of the document."""
        return _interpolate(self.document, bindings)

    def image_for(self, service: str, bindings: Mapping[str, str]) -> Optional[str]:
        """Resolved image reference of a service, None for build-only services."""
        image = self.service(service).get("image")
        if image is None:
            return None
        return substitute(str(image), bindings)

    def declared_ports(self, service: str) -> List[int]:
        """Container ports published by the descriptor itself."""
        ports: List[int] = []
        for entry in self.service(service).get("ports", []) or []:
            if isinstance(entry, dict):
                target = entry.get("target")
                if target is not None:
                    ports.append(int(target))
                continue
            # "HOST:CONTAINER/proto", "IP:HOST:CONTAINER" or "CONTAINER"
            container_part = str(entry).split("/")[0].rsplit(":", 1)[-1]
            if "-" in container_part:
                logger.debug(f"Skipping port range {entry!r} of {service}")
                continue
            ports.append(int(container_part))
        return ports

    def secret_files(self, bindings: Optional[Mapping[str, str]] = None) -> Dict[str, Path]:
        """
        File-based secrets declared at the top level, as absolute paths.

        Relative paths resolve against the descriptor's directory, as Compose does.
        """
        bindings = bindings or {}
        secrets: Dict[str, Path] = {}
        for name, spec in (self.document.get("secrets") or {}).items():
            if not isinstance(spec, dict) or "file" not in spec:
                continue
            file_path = Path(substitute(str(spec["file"]), bindings))
            if not file_path.is_absolute():
                file_path = self.path.parent / file_path
            secrets[name] = file_path
        return secrets

    def missing_secret_files(self, bindings: Optional[Mapping[str, str]] = None) -> Dict[str, Path]:
        return {
            name: path
            for name, path in self.secret_files(bindings).items()
            if not path.exists()
        }


__all__ = [
    "ComposeDescriptor",
    "DescriptorError",
    "substitute",
]
