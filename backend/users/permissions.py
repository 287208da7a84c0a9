from rest_framework import permissions


class IsAdminRole(permissions.BasePermission):
    """
    Only users with the ADMIN role (or superusers).
    """
    message = "Admin access required."

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin_role)


class IsCreatorOrAdmin(permissions.BasePermission):
    """
    Row policy for site records:
    - everyone authenticated: read
    - creator or admin: update
    - admin: delete (creator too when the view sets creator_may_delete)
    """

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True

        user = request.user
        if user.is_admin_role:
            return True

        is_creator = getattr(obj, 'created_by_id', None) == user.id
        if request.method == 'DELETE':
            return is_creator and getattr(view, 'creator_may_delete', False)
        return is_creator
