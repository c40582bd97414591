"""Auth API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from auth.dependencies import (
    EMAIL_CODE_RATE_LIMIT,
    LOGIN_RATE_LIMIT,
    OTP_SEND_RATE_LIMIT,
    OTP_VERIFY_RATE_LIMIT,
    REGISTER_RATE_LIMIT,
    RateLimitGuard,
    clear_csrf_cookie,
    clear_session_cookie,
    get_account_service,
    get_current_account,
    get_device_registry,
    get_login_service,
    get_request_context,
    issue_csrf_token,
    raise_http,
    rate_limited,
    require_csrf,
    set_session_cookie,
)
from auth.exceptions import AuthException
from auth.models import Account, RequestContext
from auth.results import Rejected, Require2FA, SessionIssued
from auth.schemas import (
    ApiResponse,
    AuthAccount,
    DeviceView,
    EmailCodeRequest,
    EmailRequest,
    ForgotPasswordRequest,
    GoogleAuthRequest,
    LoginRequest,
    LogoutAllRequest,
    PasswordChangeRequest,
    PasswordEvaluateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyLogin2FARequest,
)
from auth.services.account_service import AccountService
from auth.services.device_registry import DeviceTrustRegistry
from auth.services.login_service import LoginService
from auth.services.password_policy import evaluate_password

router = APIRouter()


def _session_response(response: Response, session: SessionIssued, message: str) -> ApiResponse:
    set_session_cookie(response, session.token)
    csrf_token = issue_csrf_token(response)
    return ApiResponse(
        success=True,
        message=message,
        data={
            "user": AuthAccount.from_account(session.account).model_dump(mode="json"),
            "token": session.token,
            "csrf_token": csrf_token,
            "expires_at": session.expires_at.isoformat(),
            "suspicious_login": session.suspicious,
            "new_device": session.is_new_device,
        },
    )


@router.post("/login", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    response: Response,
    rate_limit: RateLimitGuard = Depends(rate_limited(LOGIN_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    login_service: LoginService = Depends(get_login_service),
) -> ApiResponse:
    await rate_limit.hit_email(payload.email)
    outcome = await login_service.login(
        payload.email, payload.password, context=context, captcha_token=payload.captcha_token
    )
    if isinstance(outcome, Rejected):
        raise_http(outcome.to_exception())

    if isinstance(outcome, Require2FA):
        return ApiResponse(
            success=True,
            message="Verification code sent to your email" if outcome.code_sent else "Verification required",
            data={
                "requires_2fa": True,
                "challenge_token": outcome.challenge_token,
                "expires_at": outcome.expires_at.isoformat(),
                "suspicious_login": outcome.suspicious,
                "code_sent": outcome.code_sent,
            },
        )
    return _session_response(response, outcome, "Login successful")


@router.post("/login/verify-2fa", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def verify_login_2fa(
    payload: VerifyLogin2FARequest,
    response: Response,
    _: RateLimitGuard = Depends(rate_limited(OTP_VERIFY_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    login_service: LoginService = Depends(get_login_service),
) -> ApiResponse:
    outcome = await login_service.verify_login_2fa(payload.challenge_token, payload.otp, context=context)
    if isinstance(outcome, Rejected):
        raise_http(outcome.to_exception())
    return _session_response(response, outcome, "Login successful")


@router.post("/logout", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout(
    response: Response,
    _: None = Depends(require_csrf),
    context: RequestContext = Depends(get_request_context),
    current_account: Account = Depends(get_current_account),
    login_service: LoginService = Depends(get_login_service),
) -> ApiResponse:
    await login_service.logout(current_account.id, context=context)
    clear_session_cookie(response)
    clear_csrf_cookie(response)
    return ApiResponse(success=True, message="Logged out", data={})


@router.post("/logout-all", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout_all(
    response: Response,
    payload: LogoutAllRequest | None = None,
    _: None = Depends(require_csrf),
    context: RequestContext = Depends(get_request_context),
    current_account: Account = Depends(get_current_account),
    login_service: LoginService = Depends(get_login_service),
) -> ApiResponse:
    revoke_devices = payload.revoke_devices if payload else False
    await login_service.logout_all_devices(current_account.id, context=context, revoke_devices=revoke_devices)
    clear_session_cookie(response)
    clear_csrf_cookie(response)
    return ApiResponse(success=True, message="Logged out from all devices", data={})


@router.get("/me", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def me(current_account: Account = Depends(get_current_account)) -> ApiResponse:
    return ApiResponse(
        success=True,
        message="User retrieved",
        data={"user": AuthAccount.from_account(current_account).model_dump(mode="json")},
    )


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    rate_limit: RateLimitGuard = Depends(rate_limited(REGISTER_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    await rate_limit.hit_email(payload.email)
    try:
        account = await account_service.register(payload.name, payload.email, payload.password, context=context)
    except AuthException as exc:
        raise_http(exc)

    return ApiResponse(
        success=True,
        message="Registration successful. Please verify your email to continue.",
        data={"verification_required": True, "user": AuthAccount.from_account(account).model_dump(mode="json")},
    )


@router.post("/email/send-code", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def send_email_code(
    payload: EmailRequest,
    rate_limit: RateLimitGuard = Depends(rate_limited(EMAIL_CODE_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    await rate_limit.hit_email(payload.email)
    await account_service.send_verification_code(payload.email, context=context)
    return ApiResponse(
        success=True, message="If an account exists, a verification code has been sent.", data={}
    )


@router.post("/email/verify", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def verify_email(
    payload: EmailCodeRequest,
    rate_limit: RateLimitGuard = Depends(rate_limited(OTP_VERIFY_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    await rate_limit.hit_email(payload.email)
    try:
        await account_service.verify_email(payload.email, payload.otp, context=context)
    except AuthException as exc:
        raise_http(exc)
    return ApiResponse(success=True, message="Email verified successfully.", data={})


@router.post("/otp/send", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def send_sign_in_code(
    payload: EmailRequest,
    rate_limit: RateLimitGuard = Depends(rate_limited(OTP_SEND_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    await rate_limit.hit_email(payload.email)
    try:
        await account_service.send_sign_in_code(payload.email, context=context)
    except AuthException as exc:
        raise_http(exc)
    return ApiResponse(success=True, message="OTP sent to your email", data={})


@router.post("/otp/verify", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def sign_in_with_code(
    payload: EmailCodeRequest,
    response: Response,
    rate_limit: RateLimitGuard = Depends(rate_limited(OTP_VERIFY_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    await rate_limit.hit_email(payload.email)
    try:
        session = await account_service.sign_in_with_code(payload.email, payload.otp, context=context)
    except AuthException as exc:
        raise_http(exc)
    return _session_response(response, session, "Login successful")


@router.post("/google-auth", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def google_auth(
    payload: GoogleAuthRequest,
    response: Response,
    _: RateLimitGuard = Depends(rate_limited(LOGIN_RATE_LIMIT)),
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    try:
        session = await account_service.sign_in_with_google(payload.id_token, context=context)
    except AuthException as exc:
        raise_http(exc)
    return _session_response(response, session, "Google login successful")


@router.post("/password/evaluate", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def password_evaluate(payload: PasswordEvaluateRequest) -> ApiResponse:
    evaluation = evaluate_password(payload.password, name=payload.name, email=payload.email)
    return ApiResponse(
        success=True,
        message=evaluation.label,
        data={"ok": evaluation.ok, "label": evaluation.label, "reason": evaluation.reason, "score": evaluation.score},
    )


@router.post("/password/change", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def password_change(
    payload: PasswordChangeRequest,
    response: Response,
    _: None = Depends(require_csrf),
    context: RequestContext = Depends(get_request_context),
    current_account: Account = Depends(get_current_account),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    try:
        session = await account_service.change_password(
            current_account.id, payload.current_password, payload.new_password, context=context
        )
    except AuthException as exc:
        raise_http(exc)
    return _session_response(response, session, "Password updated")


@router.post("/password/forgot", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def password_forgot(
    payload: ForgotPasswordRequest,
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    try:
        await account_service.request_password_reset(payload.email, payload.captcha_token, context=context)
    except AuthException as exc:
        raise_http(exc)
    return ApiResponse(success=True, message="If an account exists, a reset link has been sent.", data={})


@router.post("/password/reset/{token}", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def password_reset(
    token: str,
    payload: ResetPasswordRequest,
    context: RequestContext = Depends(get_request_context),
    account_service: AccountService = Depends(get_account_service),
) -> ApiResponse:
    try:
        await account_service.reset_password(token, payload.password, context=context)
    except AuthException as exc:
        raise_http(exc)
    return ApiResponse(success=True, message="Password reset successful", data={})


@router.get("/devices", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def list_devices(
    current_account: Account = Depends(get_current_account),
    registry: DeviceTrustRegistry = Depends(get_device_registry),
) -> ApiResponse:
    devices = await registry.list_devices(current_account.id)
    return ApiResponse(
        success=True,
        message="Devices retrieved",
        data={"devices": [DeviceView.from_device(device).model_dump(mode="json") for device in devices]},
    )


@router.delete("/devices/{device_hash}", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def revoke_device(
    device_hash: str,
    _: None = Depends(require_csrf),
    current_account: Account = Depends(get_current_account),
    registry: DeviceTrustRegistry = Depends(get_device_registry),
) -> ApiResponse:
    if not await registry.revoke(current_account.id, device_hash):
        raise_http(AuthException("Device not found", status_code=404))
    return ApiResponse(success=True, message="Device revoked", data={})
