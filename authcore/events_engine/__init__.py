"""Events Engine package exposing publishing and consumer utilities."""

from .dispatcher import EventDispatcher, get_event_dispatcher, set_event_dispatcher  # noqa: F401
from .schemas import EventEnvelope  # noqa: F401
