import enum


class Status(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class ActionType(str, enum.Enum):
    """Closed set of media cue kinds.  ``triggers.media_payload`` is the one
    place that branches on it."""

    VIDEO = "VIDEO"
    SOUND = "SOUND"
    IMAGE = "IMAGE"
    GALLERY = "GALLERY"
    IMAGE_SOUND = "IMAGE_SOUND"
