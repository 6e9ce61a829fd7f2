from fastapi import Header, HTTPException, Query


def get_active_organization(
    organization_query: str | None = Query(default=None, alias="organizationId"),
    x_organization: str | None = Header(default=None, alias="X-Organization"),
) -> str:
    active = x_organization or organization_query
    if not active:
        raise HTTPException(
            status_code=400,
            detail="Missing organization context. Provide X-Organization header or organizationId query param.",
        )
    return active
