from uuid import UUID


class NotificationNotFoundError(LookupError):
    def __init__(self, notification_id: UUID) -> None:
        super().__init__(f"Notification not found: {notification_id}")
        self.notification_id = notification_id


class RetryNotAllowedError(ValueError):
    """Only failed or bounced notifications can be retried."""

    def __init__(self, notification_id: UUID, status: str) -> None:
        super().__init__(
            f"Notification {notification_id} is {status!r}; "
            "only failed or bounced notifications can be retried"
        )
        self.notification_id = notification_id
        self.status = status
