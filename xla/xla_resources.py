"""
Read-only resource table behind `@type/name` references.

Resources live under a root directory, one sub-directory per type:

    resources/
      profiles/
        general.yaml      -> @profiles/general
      prompts/
        greeting.txt      -> @prompts/greeting
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

import yaml


class ResourceError(Exception):
    pass


class ResourceNotFound(ResourceError):
    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or key)
        self.key = key


class Resource:
    """Descriptor for a single resource file."""
    def __init__(self, name: str, type: str, file_path: str, kind: str):
        self.name = name
        self.type = type
        self.file_path = file_path
        self.kind = kind

    @property
    def reference(self) -> str:
        return f"@{self.type}/{self.name}"

    def load(self) -> Any:
        """Reads the resource, decoding structured formats by extension."""
        with open(self.file_path, "r", encoding="utf-8") as f:
            text = f.read()
        if self.kind in ("yaml", "yml"):
            return yaml.safe_load(text)
        if self.kind == "json":
            return json.loads(text)
        return text

    def __repr__(self) -> str:
        return f"<Resource {self.reference} kind={self.kind} path={self.file_path!r}>"

    def __eq__(self, other):
        return (
            isinstance(other, Resource)
            and (self.name, self.type, self.file_path, self.kind) == (other.name, other.type, other.file_path, other.kind)
        )


def parse_reference(reference: str) -> tuple[str, str]:
    """Splits '@type/name' into (type, name)."""
    if not reference.startswith("@"):
        raise ResourceError(f"not a resource reference: {reference}")
    body = reference[1:]
    rtype, sep, name = body.partition("/")
    if not sep or not rtype or not name:
        raise ResourceError(f"malformed resource reference '{reference}', expected @<type>/<name>")
    return rtype, name


class ResourceTable:
    """Lookup from (type, name) to a Resource, keyed first by type."""

    def __init__(self, root_dir: Optional[str] = None):
        self.root_dir = root_dir
        self.types: Dict[str, Dict[str, Resource]] = {}
        if root_dir is not None:
            self._scan(root_dir)

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Dict[str, Resource]]) -> 'ResourceTable':
        table = cls()
        for rtype, entries in mapping.items():
            table.types[rtype] = dict(entries)
        return table

    def _scan(self, root_dir: str):
        if not os.path.isdir(root_dir):
            raise ResourceError(f"resources path does not exist, or is not a directory: {root_dir}")
        for rtype in sorted(os.listdir(root_dir)):
            type_dir = os.path.join(root_dir, rtype)
            if not os.path.isdir(type_dir):
                continue
            entries: Dict[str, Resource] = {}
            for fname in sorted(os.listdir(type_dir)):
                full = os.path.join(type_dir, fname)
                if not os.path.isfile(full) or fname.startswith("."):
                    continue
                name, ext = os.path.splitext(fname)
                entries[name] = Resource(name, rtype, os.path.abspath(full), ext.lstrip(".").lower())
            self.types[rtype] = entries

    def lookup(self, rtype: str, name: str) -> Resource:
        entries = self.types.get(rtype)
        if entries is None:
            raise ResourceNotFound(f"{rtype}/{name}", f"unknown resource type '{rtype}'")
        resource = entries.get(name)
        if resource is None:
            raise ResourceNotFound(f"{rtype}/{name}", f"no resource named '{name}' of type '{rtype}'")
        return resource

    def resolve(self, reference: str) -> Resource:
        rtype, name = parse_reference(reference)
        return self.lookup(rtype, name)

    def __repr__(self) -> str:
        counts = ", ".join(f"{t}={len(e)}" for t, e in self.types.items())
        return f"<ResourceTable root={self.root_dir!r} {counts}>"
