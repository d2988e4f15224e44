from .agent_invoker import AgentInvoker, AgentReply
from .knowledge_assistant import KnowledgeAssistant
from .turn_scheduler import TurnContext, TurnResult, TurnScheduler
from .orchestrator import Orchestrator

__all__ = [
    "AgentInvoker",
    "AgentReply",
    "KnowledgeAssistant",
    "TurnContext",
    "TurnResult",
    "TurnScheduler",
    "Orchestrator",
]
