"""
The log collection and relay pipeline.

  offset_store  -- Remembers how many bytes of a tailed file were already handled.
  tailer        -- Tails one container's JSON log file and emits a LogRecord per line.
  kube_watcher  -- Discovers Kubernetes container log files and manages one tailer per container.
  resolver      -- Maps container ids to application names using the container runtime.
  forwarder     -- Writes syslog lines to one downstream collector.
  relay         -- Syslog server which rewrites Docker syslog driver lines and forwards them.
"""
