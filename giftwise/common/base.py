import time
from .messages import Trace

class AgentBase:
    """Base class for pipeline agents: a name plus trace creation for log correlation."""

    def __init__(self, name: str):
        self.name = name

    def create_trace(self, request_id: str, step: str) -> Trace:
        """Create a trace object for this agent."""
        return Trace(
            request_id=request_id,
            step=step,
            source_agent=self.name,
            ts=time.time()
        )
