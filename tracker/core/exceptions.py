"""Custom exception classes for the application."""

from typing import Any, Optional

from fastapi import HTTPException, status


class APIException(HTTPException):
    """Base API exception with standardized error format."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[list[dict[str, Any]]] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.error_message = message
        self.details = details

        # Build the error response
        error_body = {
            "error": {
                "code": code,
                "message": message,
            }
        }
        if details:
            error_body["error"]["details"] = details

        super().__init__(
            status_code=status_code,
            detail=error_body,
            headers=headers,
        )


class AuthenticationError(APIException):
    """Authentication failed exception."""

    def __init__(
        self,
        message: str = "Authentication failed",
        code: str = "AUTHENTICATION_ERROR",
        details: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=code,
            message=message,
            details=details,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(APIException):
    """Authorization failed exception."""

    def __init__(
        self,
        message: str = "You don't have permission to perform this action",
        code: str = "AUTHORIZATION_ERROR",
        details: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code=code,
            message=message,
            details=details,
        )


class NotFoundError(APIException):
    """Resource not found exception."""

    def __init__(
        self,
        resource: str = "Resource",
        message: Optional[str] = None,
        code: str = "NOT_FOUND",
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=code,
            message=message or f"{resource} not found",
        )


class ServiceUnavailableError(APIException):
    """A backing service needed for the request is unreachable."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        code: str = "SERVICE_UNAVAILABLE",
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=code,
            message=message,
        )


class AccountLockedError(APIException):
    """Account locked exception."""

    def __init__(
        self,
        message: str = "Account is temporarily locked due to too many failed login attempts",
        code: str = "ACCOUNT_LOCKED",
        unlock_at: Optional[str] = None,
    ):
        details = None
        if unlock_at:
            details = [{"unlock_at": unlock_at}]

        super().__init__(
            status_code=status.HTTP_423_LOCKED,
            code=code,
            message=message,
            details=details,
        )


# Messages for the error tags raised as UserError.
USER_ERROR_MESSAGES: dict[str, str] = {
    "account_creation_disabled": "User account creation has been disabled.",
    "account_creation_restricted": "User account creation is restricted for this email address.",
    "account_disabled": "Your account has been disabled.",
    "account_exists": "There is already an account with that login name.",
    "auth_cant_create_account": "This site does not allow you to create accounts.",
    "auth_failure": "You are not authorized to perform this action.",
    "entry_access_denied": "You are not allowed to file bugs in this product.",
    "extern_id_exists": "There is already an account with that external login.",
    "empty_group_name": "You must enter a name for the group.",
    "group_grant_to_self": "A group cannot grant membership to itself.",
    "group_not_renamable": "System groups cannot be renamed.",
    "group_exists": "There is already a group with that name.",
    "group_has_members": "The group still has members.",
    "group_not_deletable": "System groups cannot be deleted.",
    "illegal_user_id": "The user id must be a number.",
    "invalid_username": "There is no user with that login name.",
    "login_illegal_character": "The login name contains an illegal character.",
    "login_too_long": "The login name is too long.",
    "mfa_disable_denied": "You may not disable two-factor authentication for this account.",
    "no_products": "There are no products you can file bugs in.",
    "password_not_complex": "The password does not meet the complexity requirements.",
    "password_too_short": "The password is too short.",
    "product_admin_denied": "You are not allowed to administer this product.",
    "product_disabled": "The product is closed for bug entry.",
    "setting_disabled": "This preference cannot be changed on this site.",
    "setting_name_invalid": "There is no preference with that name.",
    "setting_value_invalid": "That value is not allowed for this preference.",
    "token_does_not_exist": "The token you submitted does not exist or has expired.",
    "user_access_by_id_denied": "You are not allowed to view that user.",
    "user_deletion_disabled": "User deletion is disabled.",
    "user_has_history": "The account has activity history and cannot be deleted.",
    "user_login_required": "You must enter a login name.",
    "invalid_regexp": "The regular expression is not valid.",
}


class UserError(APIException):
    """An error caused by user input, identified by a stable error tag."""

    def __init__(
        self,
        error: str,
        message: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        **params: Any,
    ):
        self.error = error
        self.params = params
        details = [{k: v for k, v in params.items() if v is not None}] if params else None
        super().__init__(
            status_code=status_code,
            code=error,
            message=message or USER_ERROR_MESSAGES.get(error, error.replace("_", " ")),
            details=details,
        )


class CodeError(APIException):
    """An internal error caused by a programming or configuration mistake."""

    def __init__(self, error: str, **params: Any):
        self.error = error
        self.params = params
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=error,
            message=f"Internal error: {error}",
            details=[{k: str(v) for k, v in params.items()}] if params else None,
        )
