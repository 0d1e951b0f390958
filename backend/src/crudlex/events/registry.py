"""Per data-instance event listener registry.

Follows the same pattern as the validator registry, but listeners are held
per instance and ordered: they run in registration order and are removed in
stack order.
"""

import logging
from typing import TYPE_CHECKING

from crudlex.events.types import Action, EventListener, Moment

if TYPE_CHECKING:
    from crudlex.core.entity import Entity

logger = logging.getLogger(__name__)


class Events:
    """Ordered listener lists keyed by (moment, action).

    Example:
        events = Events()
        events.push(Moment.BEFORE, Action.CREATE, lambda entity: entity.get("title") != "")
        events.should_execute(entity, Moment.BEFORE, Action.CREATE)
    """

    def __init__(self) -> None:
        self._listeners: dict[tuple[Moment, Action], list[EventListener]] = {}

    def push(self, moment: Moment, action: Action, listener: EventListener) -> None:
        """Append a listener to the (moment, action) list."""
        self._listeners.setdefault((moment, action), []).append(listener)

    def pop(self, moment: Moment, action: Action) -> EventListener | None:
        """Remove and return the most recently pushed listener, or None."""
        listeners = self._listeners.get((moment, action))
        if not listeners:
            return None
        return listeners.pop()

    def get_listeners(self, moment: Moment, action: Action) -> list[EventListener]:
        return list(self._listeners.get((moment, action), []))

    def should_execute(self, entity: "Entity", moment: Moment, action: Action) -> bool:
        """Run the listeners of (moment, action) in registration order.

        Stops at the first listener returning False. A listener raising an
        exception counts as returning False.

        Returns:
            True if every listener succeeded (or none is registered).
        """
        for listener in self._listeners.get((moment, action), []):
            try:
                result = listener(entity)
            except Exception:
                logger.exception(
                    "%s %s listener %r failed for %s",
                    moment.value,
                    action.value,
                    listener,
                    entity.definition.name,
                )
                return False

            if not result:
                logger.debug(
                    "%s %s listener %r returned false for %s",
                    moment.value,
                    action.value,
                    listener,
                    entity.definition.name,
                )
                return False

        return True

    def clear(self) -> None:
        """Remove all listeners. Primarily for testing."""
        self._listeners.clear()
