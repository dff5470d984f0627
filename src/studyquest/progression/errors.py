"""Progression domain errors."""


class ProgressionError(Exception):
    """Base class for progression failures callers can act on."""

    status_code = 400


class QuestNotFoundError(ProgressionError):
    status_code = 404

    def __init__(self, quest_id: str) -> None:
        super().__init__(f"Quest not found in today's set: {quest_id}")
        self.quest_id = quest_id


class BadgeNotFoundError(ProgressionError):
    status_code = 404

    def __init__(self, slug: str) -> None:
        super().__init__(f"Badge not found: {slug}")
        self.slug = slug


class BadgeNotManualError(ProgressionError):
    """Raised when a predicate-driven badge is unlocked by hand."""

    status_code = 400

    def __init__(self, slug: str) -> None:
        super().__init__(f"Badge {slug} is earned automatically and cannot be unlocked manually")
        self.slug = slug


class ProgressionConflictError(ProgressionError):
    """Raised when a compare-and-set write keeps losing to concurrent writers."""

    status_code = 409
