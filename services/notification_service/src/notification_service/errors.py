from uuid import UUID


class TemplateNotFoundError(LookupError):
    def __init__(self, template_id: UUID) -> None:
        super().__init__(f"Template not found or inactive: {template_id}")
        self.template_id = template_id


class TemplateChannelMismatchError(ValueError):
    """A template written for one channel was requested for another."""

    def __init__(self, template_id: UUID, template_channel: str, channel: str) -> None:
        super().__init__(
            f"Template {template_id} is for {template_channel!r}, "
            f"not {channel!r}"
        )
        self.template_id = template_id
        self.template_channel = template_channel
        self.channel = channel
