"""Command-line entry point: argument parsing, logging, signals, exit codes."""

import argparse
import logging
import signal
import sys

from kubetail.cluster import KubernetesInventory
from kubetail.config import LOG_LEVELS, load_config, load_yaml_config
from kubetail.errors import KubetailError
from kubetail.filters import split_patterns
from kubetail.models import FilterKind
from kubetail.tail import KubeTail, TailOutcome

logger = logging.getLogger(__name__)

EPILOG = """\
examples:
  kubetail -i apache nginx              tail pods containing "apache" or "nginx", with a header per pod
  kubetail -i pod1 pod2 -t 20           start from the last 20 lines of pod1 and pod2
  kubetail --in-cluster pod1            use the pod's service account when running inside the cluster
  kubetail apache -x POST -g example.com
                                        drop lines matching POST, then keep only lines matching example.com

Filters run in the order given on the command line. Output is followed until
Ctrl-C or until every stream has ended.
"""


class OrderedFilterAction(argparse.Action):
    """Appends (kind, patterns) to a shared list so --grep/--vgrep keep their order."""

    def __init__(self, option_strings, dest, kind: FilterKind = FilterKind.INCLUDE, **kwargs):
        self.kind = kind
        super().__init__(option_strings, dest, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        filters = list(getattr(namespace, self.dest, None) or [])
        filters.append((self.kind, split_patterns(values)))
        setattr(namespace, self.dest, filters)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubetail",
        description="Tail logs from multiple Kubernetes pods simultaneously. "
                    "Every pod whose name contains one of NAME is followed.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("names", nargs="+", metavar="NAME", help="Pod name substring(s) to match")
    parser.add_argument(
        "-k", "--k8s", "--in-cluster", dest="in_cluster", action="store_true",
        help="Use in-cluster credentials (when running inside a pod)",
    )
    parser.add_argument(
        "-i", "--id", dest="show_headers", action="store_true",
        help="Display the pod name as a header above its output",
    )
    parser.add_argument(
        "-g", "--grep", dest="filters", action=OrderedFilterAction, kind=FilterKind.INCLUDE,
        metavar="PATTERNS", default=[],
        help="Only keep lines matching one of the comma-separated regexes (repeatable)",
    )
    parser.add_argument(
        "-x", "--vgrep", dest="filters", action=OrderedFilterAction, kind=FilterKind.EXCLUDE,
        metavar="PATTERNS", default=[],
        help="Drop lines matching one of the comma-separated regexes (repeatable)",
    )
    parser.add_argument(
        "-t", "--tail-lines", type=int, default=None,
        help="Start each stream with this many previous lines (default: 10)",
    )
    parser.add_argument("-n", "--namespace", default=None, help="Only search this namespace")
    parser.add_argument(
        "-c", "--container", default=None,
        help="Container to tail in multi-container pods",
    )
    parser.add_argument("--kubeconfig", default=None, help="Path to kubeconfig file")
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--no-color", action="store_true", help="Disable colored headers")
    parser.add_argument(
        "--fail-fast", action="store_true",
        help="Stop every stream when one of them fails instead of continuing",
    )
    parser.add_argument(
        "--log-level", type=str.upper, choices=LOG_LEVELS, default=None,
        help="Diagnostic log level on stderr (default: INFO)",
    )
    return parser


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [KUBETAIL] %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def run(argv: list[str] | None = None, inventory=None, out=None) -> int:
    """Run kubetail and return the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args, load_yaml_config(args.config))
    except KubetailError as e:
        setup_logging("INFO")
        logger.error("%s", e)
        return 1
    setup_logging(config.log_level)

    try:
        if inventory is None:
            inventory = KubernetesInventory.from_config(
                in_cluster=config.in_cluster,
                kubeconfig=config.kubeconfig,
                namespace=config.namespace,
                chunk_size=config.chunk_size,
            )
        tail = KubeTail(config, inventory, out=out)

        def signal_handler(signum, frame):
            logger.info("Caught signal %d, terminating", signum)
            tail.stop()

        previous = {sig: signal.signal(sig, signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            outcome = tail.run()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
    except KubetailError as e:
        logger.error("%s", e)
        return 1

    if outcome is TailOutcome.FAILED:
        return 1
    return 0


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
