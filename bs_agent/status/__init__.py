"""
Host health checks run periodically by the agent.
"""
