"""The acting user resolved from the request's access token."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Actor:
    user_id: str
    company_id: str
    name: str | None = None
    permissions: list[str] = field(default_factory=list)
