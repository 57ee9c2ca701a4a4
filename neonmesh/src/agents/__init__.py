from .registry import AgentRegistry, DryRunAgent, default_agent_id

__all__ = ["AgentRegistry", "DryRunAgent", "default_agent_id"]
