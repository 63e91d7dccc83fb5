from regdesk.models.event import Event
from regdesk.models.queue_counter import QueueCounter
from regdesk.models.order import Order, ParticipantGroup

__all__ = ["Event", "QueueCounter", "Order", "ParticipantGroup"]
