from __future__ import annotations

import logging
from typing import Any

import yaml
from jsonschema import ValidationError
from jsonschema import validate as jsonschema_validate

from vcluster_api.models import ServiceEndpoint
from vcluster_api.services.errors import CredentialDecodeException

logger = logging.getLogger(__name__)

KUBECONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["clusters"],
    "properties": {
        "clusters": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["cluster"],
                "properties": {
                    "name": {"type": "string"},
                    "cluster": {
                        "type": "object",
                        "properties": {"server": {"type": "string"}},
                    },
                },
            },
        },
        "contexts": {"type": ["array", "null"]},
        "users": {"type": ["array", "null"]},
    },
}


class ClusterEntry:
    """View over one item of a kubeconfig ``clusters`` list."""

    def __init__(self, raw: dict[str, Any]) -> None:
        self._raw = raw

    @property
    def name(self) -> str | None:
        return self._raw.get("name")

    @property
    def server(self) -> str:
        return self._raw["cluster"].get("server") or ""

    @server.setter
    def server(self, value: str) -> None:
        self._raw["cluster"]["server"] = value


class CredentialDocument:
    """Parsed kubeconfig with typed access to the fields we touch.

    Everything else in the document is carried through untouched.
    """

    def __init__(self, raw: dict[str, Any]) -> None:
        self._raw = raw
        self._clusters = [ClusterEntry(item) for item in raw["clusters"]]

    @classmethod
    def from_bytes(cls, data: bytes) -> CredentialDocument:
        try:
            raw = yaml.safe_load(data)
        except yaml.YAMLError as exc:
            raise CredentialDecodeException(f"kubeconfig is not valid YAML: {exc}") from exc
        if not isinstance(raw, dict):
            raise CredentialDecodeException("kubeconfig must be a mapping")
        if "clusters" not in raw:
            raise CredentialDecodeException("kubeconfig missing 'clusters' field")
        try:
            jsonschema_validate(instance=raw, schema=KUBECONFIG_SCHEMA)
        except ValidationError as exc:
            raise CredentialDecodeException(f"kubeconfig is invalid: {exc.message}") from exc
        return cls(raw)

    @property
    def clusters(self) -> list[ClusterEntry]:
        return list(self._clusters)

    @property
    def contexts(self) -> list[str]:
        return [item.get("name") for item in self._raw.get("contexts") or [] if isinstance(item, dict)]

    @property
    def users(self) -> list[str]:
        return [item.get("name") for item in self._raw.get("users") or [] if isinstance(item, dict)]

    @property
    def current_context(self) -> str | None:
        return self._raw.get("current-context")

    def set_server(self, server: str) -> None:
        for entry in self._clusters:
            entry.server = server

    def to_bytes(self) -> bytes:
        return yaml.safe_dump(self._raw, sort_keys=False, default_flow_style=False).encode("utf-8")


def require_text(data: bytes) -> bytes:
    """Return ``data`` unchanged if it is UTF-8 text."""
    try:
        data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CredentialDecodeException(f"kubeconfig is not UTF-8 text: {exc}") from exc
    return data


def patch_kubeconfig(data: bytes, endpoint: ServiceEndpoint) -> bytes:
    """Point every cluster entry of the kubeconfig in ``data`` at ``endpoint``."""
    document = CredentialDocument.from_bytes(data)
    document.set_server(endpoint.uri)
    empty = [entry.name for entry in document.clusters if not entry.server]
    if empty:
        raise CredentialDecodeException(f"kubeconfig clusters left without a server: {empty}")
    logger.debug(
        "Patched %s cluster entries to server %s",
        len(document.clusters),
        endpoint.uri,
    )
    return document.to_bytes()
