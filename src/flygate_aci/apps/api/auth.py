import hmac

from fastapi import Header, HTTPException, Request, status


def _expected_token(request: Request) -> str:
    return request.app.state.ctx.settings.admin_token


async def require_admin_token(
    request: Request,
    x_aci_token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    """
    Accept either X-ACI-Token or Authorization: Bearer <token> for operator routes.
    """
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    elif x_aci_token:
        token = x_aci_token

    if token is None or not hmac.compare_digest(token.encode("utf-8"), _expected_token(request).encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-ACI-Token",
        )
