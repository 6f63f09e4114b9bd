"""
Per-request authorization context.

One `RequestContext` is built per inbound request (see
`app.rbac.dependencies.get_request_context`) and discarded when the
request ends.  It carries:

- the verified token claims (empty when the caller is anonymous),
- whether the caller is authenticated,
- `items`, a request-scoped scratch map.  The verification service
  memoizes the caller's resolved permission codes here so a request
  resolves its permission set at most once, no matter how many checks
  it runs.

Nothing in here is shared across requests.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RequestContext:
    claims: dict[str, Any] = field(default_factory=dict)
    is_authenticated: bool = False
    items: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: dict[str, Any] | None) -> "RequestContext":
        if not claims:
            return cls()
        return cls(claims=dict(claims), is_authenticated=True)

    def claim(self, name: str) -> Any:
        return self.claims.get(name)
