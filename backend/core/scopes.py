"""
Scopes grantable to API tokens.
"""

ANALYTICS_READ = "analytics:read"
PROPOSALS_READ = "proposals:read"
UPGRADES_READ = "upgrades:read"
BLOG_WRITE = "blog:write"
ACCOUNT_READ = "account:read"

API_SCOPES = frozenset(
    {
        ANALYTICS_READ,
        PROPOSALS_READ,
        UPGRADES_READ,
        BLOG_WRITE,
        ACCOUNT_READ,
    }
)


def unknown_scopes(scopes: list[str]) -> list[str]:
    """Scopes in the list that are not grantable, in input order."""
    return [s for s in scopes if s not in API_SCOPES]
