"""Anti-forgery token issuance for browser clients."""

from fastapi import APIRouter, Response

from core.dependencies import CsrfSecretDep, SettingsDep
from core.security import XSRF_COOKIE_NAME, create_token, token_cookie_options
from models.schemas import CsrfTokenResponse

router = APIRouter(prefix="/csrf", tags=["csrf"])


@router.get("/restore", response_model=CsrfTokenResponse)
async def restore_csrf_token(
    response: Response,
    secret: CsrfSecretDep,
    settings: SettingsDep,
) -> CsrfTokenResponse:
    """
    Issue a token bound to the caller's secret cookie. The token is returned in
    the body and in a script-readable XSRF-TOKEN cookie; send it back in the
    XSRF-Token header on unsafe requests.
    """
    token = create_token(secret)
    response.set_cookie(XSRF_COOKIE_NAME, token, **token_cookie_options(settings))
    return CsrfTokenResponse(token=token)
