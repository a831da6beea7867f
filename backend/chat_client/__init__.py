from .reconnect import ReconnectPolicy, reconnect, resync
from .session import ApiError, ApiSession, SessionExpired
from .timeline import MessageTimeline

__all__ = ["ApiError", "ApiSession", "MessageTimeline", "ReconnectPolicy", "SessionExpired", "reconnect", "resync"]
