from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from fastapi import Request, HTTPException, status
from hivcare.core.security import verify_token


class Role:
    """Portal roles"""
    CUSTOMER = "CUSTOMER"
    DOCTOR = "DOCTOR"
    STAFF = "STAFF"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class Permissions:
    """Permission constants for the clinic portal"""

    # Appointments
    APPOINTMENTS_CREATE = "appointments:create"
    APPOINTMENTS_READ = "appointments:read"
    APPOINTMENTS_CHECK_IN = "appointments:check_in"
    APPOINTMENTS_REVIEW = "appointments:review"
    APPOINTMENTS_COMPLETE = "appointments:complete"
    APPOINTMENTS_CANCEL = "appointments:cancel"

    # Treatment plans and medication schedules
    TREATMENT_PLANS_READ = "treatment_plans:read"
    TREATMENT_PLANS_WRITE = "treatment_plans:write"
    SCHEDULES_WRITE = "medication_schedules:write"

    # Payments
    PAYMENTS_CREATE = "payments:create"
    PAYMENTS_READ = "payments:read"
    PAYMENTS_CONFIRM = "payments:confirm"

    # System
    SYSTEM_ADMIN = "system:admin"


ROLE_PERMISSIONS: Dict[str, List[str]] = {
    Role.CUSTOMER: [
        Permissions.APPOINTMENTS_CREATE,
        Permissions.APPOINTMENTS_READ,
        Permissions.APPOINTMENTS_CANCEL,
        Permissions.TREATMENT_PLANS_READ,
        Permissions.PAYMENTS_CREATE,
        Permissions.PAYMENTS_READ,
    ],
    Role.DOCTOR: [
        Permissions.APPOINTMENTS_READ,
        Permissions.APPOINTMENTS_REVIEW,
        Permissions.APPOINTMENTS_COMPLETE,
        Permissions.APPOINTMENTS_CANCEL,
        Permissions.TREATMENT_PLANS_READ,
        Permissions.TREATMENT_PLANS_WRITE,
        Permissions.SCHEDULES_WRITE,
    ],
    Role.STAFF: [
        Permissions.APPOINTMENTS_CREATE,
        Permissions.APPOINTMENTS_READ,
        Permissions.APPOINTMENTS_CHECK_IN,
        Permissions.APPOINTMENTS_CANCEL,
        Permissions.PAYMENTS_CREATE,
        Permissions.PAYMENTS_READ,
        Permissions.PAYMENTS_CONFIRM,
    ],
    Role.MANAGER: [
        Permissions.APPOINTMENTS_READ,
        Permissions.TREATMENT_PLANS_READ,
        Permissions.PAYMENTS_READ,
    ],
    Role.ADMIN: [Permissions.SYSTEM_ADMIN],
}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, threaded explicitly into every mutating call."""
    id: int
    name: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Actor":
        return cls(
            id=int(payload["sub"]),
            name=payload.get("name") or "",
            role=payload.get("role") or Role.CUSTOMER,
        )


def get_current_user(request: Request) -> Dict[str, Any]:
    """Extract and validate user from request"""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = auth_header.split(" ")[1]
    payload = verify_token(token, "access")

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


def effective_permissions(payload: Dict[str, Any]) -> List[str]:
    """Explicit token permissions, falling back to the role's defaults"""
    permissions = payload.get("permissions")
    if permissions is None:
        permissions = ROLE_PERMISSIONS.get(payload.get("role"), [])
    return list(permissions)


def require_permissions(required_permissions: List[str]):
    """Dependency function to check permissions"""
    def permission_checker(request: Request) -> Dict[str, Any]:
        user_payload = get_current_user(request)
        request.state.user = user_payload

        user_permissions = effective_permissions(user_payload)

        # System admin has access to everything
        has_access = Permissions.SYSTEM_ADMIN in user_permissions or any(
            perm in user_permissions
            for perm in required_permissions
        )

        if not has_access:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )

        return user_payload

    return permission_checker


def can_edit_plan(actor: Actor, plan_doctor_id: Optional[int]) -> bool:
    """Only the authoring doctor (or an admin) edits a treatment plan"""
    if actor.is_admin:
        return True
    return actor.role == Role.DOCTOR and plan_doctor_id == actor.id
