"""Exception types shared by the isolation layer and the domain services."""


class TenantResolutionError(Exception):
    """No usable tenant for the request. Surfaced as 400 TENANT_NOT_FOUND."""

    code = "TENANT_NOT_FOUND"


class TenantInactiveError(TenantResolutionError):
    """The request named a tenant that exists but is deactivated."""

    code = "TENANT_INACTIVE"

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(self.code)


class NotFoundOrDeniedError(Exception):
    """A tenant-scoped lookup came back empty.

    Foreign-tenant rows and missing rows are deliberately indistinguishable.
    """

    entity = "Record"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or f"{self.entity} not found or access denied")


class MerchantNotFoundError(NotFoundOrDeniedError):
    entity = "Merchant"


class QueueNotFoundError(NotFoundOrDeniedError):
    entity = "Queue"


class QueueEntryNotFoundError(NotFoundOrDeniedError):
    entity = "Queue entry"


class WebChatSessionNotFoundError(NotFoundOrDeniedError):
    entity = "Chat session"


class QueueLimitReachedError(Exception):
    """Merchant already owns as many queues as its plan allows."""


class AlreadyInQueueError(Exception):
    """Chat session already holds a waiting queue entry."""


class TenantAccessError(Exception):
    """An isolation check failed inside a route. Rendered as ``{error, code}``."""

    def __init__(self, status_code: int, error: str, code: str) -> None:
        self.status_code = status_code
        self.error = error
        self.code = code
        super().__init__(error)
