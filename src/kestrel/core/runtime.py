from __future__ import annotations

from kestrel.core.automation import AutomationManager
from kestrel.core.events import EventBus

_EVENT_BUS: EventBus | None = None
_AUTOMATION: AutomationManager | None = None


def get_event_bus() -> EventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus()
    return _EVENT_BUS


def get_automation_manager() -> AutomationManager:
    global _AUTOMATION
    if _AUTOMATION is None:
        _AUTOMATION = AutomationManager(event_bus=get_event_bus())
    return _AUTOMATION
