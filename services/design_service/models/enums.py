"""Enum definitions for design service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class LockMode(str, enum.Enum):
    REMOTE = "remote"
    LOCAL_ONLY = "local_only"


class FinalizeTrigger(str, enum.Enum):
    THANKYOU = "thankyou"
    COMPLETED = "completed"


class EditorLinkMode(str, enum.Enum):
    START = "start"
    EDIT = "edit"
