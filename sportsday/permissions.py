"""Role checks shared by the API views and the CSV exports."""

from __future__ import annotations

from functools import wraps

from django.http import HttpResponseForbidden
from rest_framework import permissions

from .models import Profile


MANAGER_ROLES = (Profile.Role.ADMIN, Profile.Role.HOUSE_CAPTAIN)


def user_role(user) -> str | None:
    """Return the sportsday role recorded for ``user``, if any."""

    if user is None or not user.is_authenticated:
        return None
    profile = getattr(user, "sportsday_profile", None)
    return profile.role if profile else None


def is_admin(user) -> bool:
    if user is None or not user.is_authenticated:
        return False
    return bool(user.is_staff or user_role(user) == Profile.Role.ADMIN)


def is_manager(user) -> bool:
    if user is None or not user.is_authenticated:
        return False
    return bool(user.is_staff or user_role(user) in MANAGER_ROLES)


class IsManager(permissions.BasePermission):
    """Admins and house captains may read; only admins may write."""

    message = "Sports day staff access required."

    def has_permission(self, request, view) -> bool:
        if not is_manager(request.user):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return is_admin(request.user)


class IsGuardian(permissions.BasePermission):
    message = "Guardian access required."

    def has_permission(self, request, view) -> bool:
        return user_role(request.user) == Profile.Role.PARENT


def manager_required(view_func):
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        if not is_manager(request.user):
            return HttpResponseForbidden("Sports day staff access required.")
        return view_func(request, *args, **kwargs)

    return _wrapped_view
