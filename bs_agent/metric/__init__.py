"""
Metric backends.

Backends are looked up by name with `get_backend`.  The following backends are always registered:

  fake      -- Discards every metric.
  logstash  -- Writes every metric as a JSON message to a logstash udp or tcp input.
"""

from bs_agent.metric.base import Backend
from bs_agent.metric.base import ContainerInfo
from bs_agent.metric.base import HostInfo
from bs_agent.metric.base import register
from bs_agent.metric.base import get_backend
from bs_agent.metric.base import registered_backends

# Importing the backends registers them.
from bs_agent.metric import fake  # NOQA
from bs_agent.metric import logstash  # NOQA

__all__ = [
    "Backend",
    "ContainerInfo",
    "HostInfo",
    "register",
    "get_backend",
    "registered_backends",
]
