"""Event system types for CRUDlex.

Defines the moments and actions an event listener can be attached to:
- Moment: before (can veto the action) or after (observes the result)
- Action: create, update or delete
"""

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crudlex.core.entity import Entity


class Moment(Enum):
    """When a listener runs relative to the persisted write."""

    BEFORE = "before"
    AFTER = "after"


class Action(Enum):
    """The type of write a listener is attached to."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Listener signature: (Entity) -> bool, False vetoes (before) or flags failure (after)
EventListener = Callable[["Entity"], bool]
