# Copyright 2023 Scalyr Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ------------------------------------------------------------------------

"""
The bs agent process.

Usage: bs-agent [options]

The agent reads its configuration from the BS_* environment variables, starts the syslog relay (and, when
BS_KUBERNETES_LOG_DIR is set, the Kubernetes log watcher feeding the relay), periodically runs the host checks and
reports their results as metrics, and runs until it receives SIGTERM or SIGINT.
"""

from optparse import OptionParser
import signal
import socket
import sys

import bs_agent.bs_logging as bs_logging
from bs_agent.__bs__ import BS_VERSION
from bs_agent.config_util import BadConfiguration
from bs_agent.configuration import Configuration
from bs_agent.log.kube_watcher import KubeLogWatcher
from bs_agent.log.relay import SyslogRelay
from bs_agent.metric import HostInfo, get_backend
from bs_agent.runtime import DockerRuntime
from bs_agent.status.hostcheck import CheckCollection
from bs_agent.util import RunState, StoppableThread

log = bs_logging.getLogger(__name__)


def get_host_info():
    """Returns the name and addresses of this host.

    @rtype: HostInfo
    """
    hostname = socket.gethostname()
    try:
        addrs = socket.gethostbyname_ex(hostname)[2]
    except OSError as e:
        log.warning(
            "Unable to resolve the addresses of %s: %s",
            hostname,
            e,
            limit_once_per_x_secs=3600,
            limit_key="host-addresses",
        )
        addrs = []
    return HostInfo(name=hostname, addrs=addrs)


class BsAgent(object):
    """Owns every component of the agent and their lifecycle."""

    def __init__(self, config, runtime=None, metrics_backend=None, checks=None):
        """
        @type config: Configuration
        @param runtime: The container runtime client.  Created from the configuration if None.
        @param metrics_backend: The metric backend.  Created from the configuration if None.
        @param checks: The host checks.  Created from the configuration if None.
        """
        self.__config = config
        if runtime is None:
            runtime = DockerRuntime(config.docker_endpoint)
        self.__runtime = runtime
        if metrics_backend is None:
            metrics_backend = get_backend(config.metrics_backend)
        self.__metrics_backend = metrics_backend
        if checks is None:
            checks = CheckCollection.from_config(runtime, config)
        self.__checks = checks

        self.__relay = SyslogRelay(config.relay_config(), runtime=runtime)
        self.__watcher = None
        self.__status_thread = None

    @property
    def relay(self):
        return self.__relay

    @property
    def watcher(self):
        return self.__watcher

    def start(self):
        """Starts every component.

        @raise InvalidProtocol, ForwardConnectionError, NoLogDirectory: If a component could not be started.
        """
        log.info("Starting bs agent version %s", BS_VERSION)
        self.__relay.start()

        try:
            if self.__config.kubernetes_enabled:
                self.__watcher = KubeLogWatcher(
                    self.__relay,
                    self.__config.kubernetes_log_dir,
                    self.__config.kubernetes_pos_dir,
                    scan_interval=self.__config.kubernetes_scan_interval,
                    poll_interval=self.__config.tail_poll_interval,
                    pos_update_interval=self.__config.tail_pos_update_interval,
                )
                self.__watcher.start()
        except Exception:
            self.__relay.stop()
            raise

        self.__status_thread = StoppableThread(
            target=self.__report_status, name="Host status reporter"
        )
        self.__status_thread.start()

    def stop(self):
        """Stops every component, in the reverse order they were started."""
        if self.__status_thread is not None:
            self.__status_thread.stop()
            self.__status_thread = None
        if self.__watcher is not None:
            self.__watcher.stop()
            self.__watcher = None
        self.__relay.stop()
        self.__runtime.close()
        log.info("Stopped bs agent")

    def run_checks(self):
        """Runs the host checks once and reports each result as a `host_hostcheck_<name>` metric.

        @return: True if every check succeeded.
        """
        results = self.__checks.run()
        host = get_host_info()
        for result in results:
            try:
                self.__metrics_backend.send_host(
                    host, "hostcheck_%s" % result.name, 1 if result.successful else 0
                )
            except Exception as e:
                log.warning(
                    "Unable to report the result of host check %s: %s",
                    result.name,
                    e,
                    limit_once_per_x_secs=300,
                    limit_key="report-host-check",
                )
        return all(result.successful for result in results)

    def __report_status(self, run_state):
        while run_state.is_running():
            try:
                self.run_checks()
            except Exception:
                log.exception(
                    "Unexpected error while running host checks",
                    limit_once_per_x_secs=300,
                    limit_key="run-host-checks",
                )
            run_state.sleep_but_awaken_if_stopped(self.__config.metrics_interval)

    def run_until_stopped(self, run_state):
        """Starts the agent and blocks until `run_state` is stopped, then stops the agent.

        @type run_state: RunState
        """
        self.start()
        try:
            while not run_state.sleep_but_awaken_if_stopped(1.0):
                if not self.__relay.is_alive():
                    log.error(
                        "The syslog relay stopped unexpectedly, exiting",
                        error_code="relayDied",
                    )
                    return 1
            return 0
        finally:
            self.stop()


def create_option_parser():
    parser = OptionParser(usage="Usage: bs-agent [options]", version="bs-agent v" + BS_VERSION)
    parser.add_option(
        "",
        "--log-level",
        dest="log_level",
        default=None,
        help="The minimum level of the agent's own log lines, such as INFO or DEBUG_2.  Overrides BS_LOG_LEVEL.",
    )
    parser.add_option(
        "",
        "--stdout",
        action="store_true",
        dest="stdout",
        default=False,
        help="Write the agent's own log lines to stdout.  This is the default if --logs-dir is not given.",
    )
    parser.add_option(
        "",
        "--logs-dir",
        dest="logs_dir",
        default=None,
        metavar="DIR",
        help="Write the agent's own log lines to DIR/agent.log.",
    )
    parser.add_option(
        "",
        "--hostcheck",
        action="store_true",
        dest="hostcheck",
        default=False,
        help="Run the host checks once and exit with a non-zero status if one of them failed.",
    )
    return parser


def main(argv=None):
    parser = create_option_parser()
    (options, args) = parser.parse_args(argv)
    if args:
        parser.error("Unexpected arguments: %s" % " ".join(args))

    bs_logging.set_log_destination(
        use_stdout=options.stdout or options.logs_dir is None,
        use_disk=options.logs_dir is not None,
        logs_directory=options.logs_dir,
    )

    try:
        config = Configuration.from_environment()
        bs_logging.set_log_level(options.log_level or config.log_level)
        agent = BsAgent(config)
    except (BadConfiguration, ValueError) as e:
        print("Invalid configuration: %s" % e, file=sys.stderr)
        return 2

    if options.hostcheck:
        return 0 if agent.run_checks() else 1

    run_state = RunState()

    def handle_terminate(signum, frame):
        log.info("Received signal %d, stopping", signum)
        run_state.stop()

    signal.signal(signal.SIGTERM, handle_terminate)
    signal.signal(signal.SIGINT, handle_terminate)

    try:
        return agent.run_until_stopped(run_state)
    except Exception as e:
        log.exception("Fatal error, exiting", error_code="fatalError")
        print(str(e), file=sys.stderr)
        return 1
    finally:
        bs_logging.close_handlers()


if __name__ == "__main__":
    sys.exit(main())
