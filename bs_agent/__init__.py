"""
Implements the bs agent, a node-resident daemon that collects container log output and relays it as syslog.

The agent runs two log pipelines.  The syslog relay receives lines written by the Docker syslog logging driver,
replaces the container id in the tag with the application name of the container and forwards the rewritten lines
to every configured collector.  In Kubernetes mode, the agent instead discovers the per-container JSON log files
written by the container runtime, tails them while remembering how far it has read, and hands each parsed line to
the relay.  The agent also runs periodic host health checks and reports metrics.

The classes exported by this package are:
  AgentLogger              -- Version of logging.Logger that implements rate limiting and error codes.
  StoppableThread          -- Small extensions to Thread that provides a centralized way to stop the thread.
  RunState                 -- Small abstraction that communicates when an ongoing process should stop.
  BadConfiguration         -- Exception thrown when the configuration information is bad.

The methods exported are:
  getLogger                -- Can be used similar to logging.getLogger to retrieve a AgentLogger instance for module.

The constants exported are:
  DEBUG_LEVEL_0 to DEBUG_LEVEL_5  -- Well known log levels that can be used to log debugging information.
"""

from bs_agent.__bs__ import BS_VERSION

from bs_agent.util import StoppableThread
from bs_agent.util import RunState

from bs_agent.config_util import BadConfiguration

from bs_agent.bs_logging import getLogger
from bs_agent.bs_logging import AgentLogger
from bs_agent.bs_logging import DEBUG_LEVEL_0, DEBUG_LEVEL_1, DEBUG_LEVEL_2
from bs_agent.bs_logging import DEBUG_LEVEL_3, DEBUG_LEVEL_4, DEBUG_LEVEL_5

__version__ = BS_VERSION

__all__ = [
    "getLogger",
    "AgentLogger",
    "StoppableThread",
    "RunState",
    "BadConfiguration",
    "DEBUG_LEVEL_0",
    "DEBUG_LEVEL_1",
    "DEBUG_LEVEL_2",
    "DEBUG_LEVEL_3",
    "DEBUG_LEVEL_4",
    "DEBUG_LEVEL_5",
]
