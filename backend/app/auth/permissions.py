"""Granular permissions for the fabric ledger.

The effective permission set is embedded in the access token by the ERP
auth service, so checks here are token-only (no DB roundtrip).

Permission naming: `<resource>.<action>`
  Resources: stock, consignment, reconciliation
  Actions:   read, write, delete, run
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # Receipts, lots, stock summaries, inventory items
    "stock.read",
    "stock.write",
    "stock.delete",

    # Client material ledger and production outputs
    "consignment.write",

    # Receipt vs inventory reconciliation
    "reconciliation.run",
}

WILDCARD = "*"


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "administrator": ALL_PERMISSIONS.copy(),

    "store_manager": {
        "stock.read", "stock.write", "stock.delete",
        "consignment.write",
    },

    "store_operator": {
        "stock.read", "stock.write",
    },

    "auditor": {
        "stock.read",
        "reconciliation.run",
    },
}


def resolve_permissions(
    role: str,
    custom_overrides: dict[str, bool] | None = None,
) -> list[str]:
    """Compute effective permissions for a role.

    1. Start with the role's defaults.
    2. Apply custom_overrides: {perm: True} adds, {perm: False} removes.
    3. Return a sorted list (for stable JWT claims).
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if custom_overrides:
        for perm, granted in custom_overrides.items():
            if perm not in ALL_PERMISSIONS:
                continue  # ignore unknown permissions
            if granted:
                base.add(perm)
            else:
                base.discard(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return WILDCARD in user_permissions or required in user_permissions
