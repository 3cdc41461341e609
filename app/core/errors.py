"""
Domain errors raised by services and mapped to HTTP responses in app.main.
"""
from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class RoleNotFound(NotFoundError):
    def __init__(self, role_id):
        super().__init__("Role not found")
        self.role_id = role_id


class GrantConflict(ConflictError):
    """Raised when a role's grants changed since the caller last read them."""

    def __init__(self, role_id: int, expected_version: int, current_version: int):
        super().__init__(
            f"Permissions for role {role_id} were modified concurrently "
            f"(expected version {expected_version}, found {current_version})"
        )
        self.role_id = role_id
        self.expected_version = expected_version
        self.current_version = current_version


class GrantVersionRequired(ConflictError):
    """Raised when an existing matrix would be replaced without expected_version."""

    def __init__(self, role_id: int, current_version: int):
        super().__init__(
            f"Permissions for role {role_id} are at version {current_version}; "
            f"send expected_version to replace them"
        )
        self.role_id = role_id
        self.current_version = current_version


class PermissionDenied(ForbiddenError):
    def __init__(self, action: str, module: str):
        super().__init__(f"You don't have permission to {action} {module}")
        self.action = action
        self.module = module
