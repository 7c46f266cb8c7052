"""
Access decisions for students and everything they own.

Every fee application, installment and payment belongs to exactly one
student, and a student belongs to exactly one parent. Operations resolve the
owning student and ask ``authorize`` instead of comparing ids inline.
"""
from edufin.exceptions import ForbiddenError
from edufin.models.users import User, Student


def is_owner(user: User, student: Student) -> bool:
    return student is not None and student.parent_id == user.id


def can_access(user: User, student: Student, allow_admin: bool = True) -> bool:
    """
    Decide whether ``user`` may act on resources owned by ``student``.

    Args:
        user: The authenticated user
        student: The student owning the resource
        allow_admin: Whether platform admins pass without owning the student

    Returns:
        True if access is granted
    """
    if allow_admin and user.is_admin:
        return True
    return is_owner(user, student)


def authorize(user: User, student: Student, allow_admin: bool = True, action: str = "access this resource") -> None:
    """
    Raise ForbiddenError unless ``user`` may act on ``student``'s resources.
    """
    if not can_access(user, student, allow_admin=allow_admin):
        raise ForbiddenError(f"Not authorized to {action}")


def require_admin(user: User, action: str = "perform this action") -> None:
    if not user.is_admin:
        raise ForbiddenError(f"Only admins can {action}")
