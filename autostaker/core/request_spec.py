from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RequestSpec:
    method: str
    base_url: str
    path: str
    query: Dict[str, Any]
    headers: Dict[str, str]
    json: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class GraphQLSpec:
    """A GraphQL POST against a subgraph endpoint.

    Variables are sent separately from the document so the same query text can
    be reused across operators and timestamps.
    """

    base_url: str
    path: str
    operation_name: str
    document: str
    variables: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})

    @property
    def body(self) -> Dict[str, Any]:
        return {
            "operationName": self.operation_name,
            "query": self.document,
            "variables": self.variables,
        }

    def to_request_spec(self) -> RequestSpec:
        return RequestSpec(
            method="POST",
            base_url=self.base_url,
            path=self.path,
            query={},
            headers=self.headers,
            json=self.body,
        )


__all__ = ["GraphQLSpec", "RequestSpec"]
