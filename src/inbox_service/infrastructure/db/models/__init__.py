"""Import all models so Base.metadata knows every table."""
from inbox_service.infrastructure.db.models.conversation import ConversationModel
from inbox_service.infrastructure.db.models.message import MessageModel
from inbox_service.infrastructure.db.models.outbox import OutboxEventModel
from inbox_service.infrastructure.db.models.pending_send import PendingSendModel
from inbox_service.infrastructure.db.models.read_state import ReadWatermarkModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "OutboxEventModel",
    "PendingSendModel",
    "ReadWatermarkModel",
]
