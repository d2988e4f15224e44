from .manager import StorageManager
from .conversation_state import ConversationState, merge_messages

__all__ = ["StorageManager", "ConversationState", "merge_messages"]
