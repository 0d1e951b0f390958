"""CRUDlex entity event system.

Listeners run around the persisted writes of a data instance:
- before create/update/delete: can veto the write by returning False
- after create/update/delete: observe the write; returning False reports
  failure to the caller without undoing the write

Usage:
    from crudlex.events import Action, Moment

    data.push_event(Moment.BEFORE, Action.DELETE, lambda entity: not entity.get("locked"))
"""

from crudlex.events.registry import Events
from crudlex.events.types import Action, EventListener, Moment

__all__ = [
    "Action",
    "EventListener",
    "Events",
    "Moment",
]
