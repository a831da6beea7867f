from rest_framework.throttling import ScopedRateThrottle


class MethodScopedRateThrottle(ScopedRateThrottle):
    """Scoped throttle that can pick a scope based on view action and HTTP method.

    Views can define:
      throttle_scope_map = {"POST": "conversation_write", "messages:POST": "message_write"}

    An ``action:METHOD`` key wins over a bare ``METHOD`` key. If no scope
    matches, throttling is skipped for this throttle instance.
    """

    def allow_request(self, request, view):
        scope_map = getattr(view, "throttle_scope_map", None)
        if not isinstance(scope_map, dict):
            return True

        method = str(request.method).upper()
        action = getattr(view, "action", None)
        scope = scope_map.get(f"{action}:{method}") if action else None
        scope = scope or scope_map.get(method)
        if not scope:
            return True

        # ScopedRateThrottle reads `view.throttle_scope`.
        setattr(view, "throttle_scope", scope)
        return super().allow_request(request, view)
