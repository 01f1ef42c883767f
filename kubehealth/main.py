"""
KubeHealth - Main Entry Point
Kubernetes namespace health auditor: one run, one report, one Slack message.
"""

import argparse
import logging
import sys

from colorama import Fore, Style, init

from kubehealth.auditor import (
    EXIT_COLLECTION_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_DELIVERY_FAILED,
    EXIT_OK,
    CollectionFailedError,
    build_report,
    run_audit,
)
from kubehealth.config import DEFAULT_LOG_LEVEL, PROJECT_NAME, VERSION, Config, ConfigError
from kubehealth.models import CANONICAL_KIND_ORDER

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

BANNER = f"""
{Fore.CYAN}╔═══════════════════════════════════════════╗
║   {Fore.WHITE}K U B E   H E A L T H{Fore.CYAN}   v{VERSION}            ║
║   {Fore.GREEN}Namespace health report for Slack{Fore.CYAN}       ║
╚═══════════════════════════════════════════╝{Style.RESET_ALL}
"""


def setup_logging(level=DEFAULT_LOG_LEVEL):
    """Configure root logging once for the process."""
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


def load_config(require_webhook=True, environ=None):
    """Load the config, logging the offending key on failure. Returns None on error."""
    try:
        return Config.from_env(environ, require_webhook=require_webhook)
    except ConfigError as e:
        logger.error("Invalid configuration (%s): %s", e.key, e)
        return None


def make_collector(config):
    """Connect to the cluster and build the Kubernetes collector."""
    from kubernetes.config import ConfigException

    from kubehealth.collectors.k8s_connector import KubernetesCollector, connect

    try:
        apis = connect()
    except ConfigException as e:
        raise ConfigError("KUBECONFIG", f"no usable cluster configuration: {e}") from e
    return KubernetesCollector(
        apis,
        fail_if_no_metrics=config.fail_if_no_metrics,
        timeout=config.namespace_timeout_seconds,
    )


def make_sender(config):
    from kubehealth.alerting.slack import SlackWebhookSender

    return SlackWebhookSender(config.slack_webhook_url)


def cmd_run(args, environ=None):
    """Run one audit and post the report to Slack."""
    from kubehealth.alerting.slack import DeliveryError

    config = load_config(environ=environ)
    if config is None:
        return EXIT_CONFIG_ERROR
    setup_logging(config.log_level)
    logger.info("Auditing namespaces: %s", ", ".join(config.namespaces))

    try:
        collector = make_collector(config)
        run_audit(config, collector, make_sender(config))
    except ConfigError as e:
        logger.error("Invalid configuration (%s): %s", e.key, e)
        return EXIT_CONFIG_ERROR
    except CollectionFailedError as e:
        for failure in e.failures:
            logger.error("Namespace %s: %s (%s)", failure.namespace, failure.kind.value, failure.reason)
        logger.error("Aborting without delivery: %s", e)
        return EXIT_COLLECTION_FAILED
    except DeliveryError as e:
        logger.error("Report delivery failed (status=%s): %s", e.status_code, e)
        return EXIT_DELIVERY_FAILED

    return EXIT_OK


def cmd_preview(args, environ=None):
    """Run one audit and print the report instead of posting it."""
    print(BANNER)

    config = load_config(require_webhook=False, environ=environ)
    if config is None:
        return EXIT_CONFIG_ERROR
    setup_logging(config.log_level)

    print(f"  {Fore.CYAN}Connecting to Kubernetes cluster...{Style.RESET_ALL}")
    try:
        collector = make_collector(config)
        print(f"  {Fore.CYAN}Collecting {len(config.namespaces)} namespace(s)...{Style.RESET_ALL}\n")
        audit = build_report(config, collector)
    except ConfigError as e:
        print(f"  {Fore.RED}Error: {e}{Style.RESET_ALL}")
        return EXIT_CONFIG_ERROR
    except CollectionFailedError as e:
        print(f"  {Fore.RED}Error: {e}{Style.RESET_ALL}")
        return EXIT_COLLECTION_FAILED

    print_summary(audit)
    print(audit.payload)
    print()
    return EXIT_OK


def print_summary(audit):
    """Print finding counts per kind with colors."""
    print(f"  {Fore.WHITE}{'='*50}{Style.RESET_ALL}")
    print(f"  {Fore.CYAN}SUMMARY{Style.RESET_ALL}")
    print(f"  {Fore.WHITE}{'='*50}{Style.RESET_ALL}")
    print(f"  {'Pods:':22s} {Fore.GREEN}{audit.pod_count}{Style.RESET_ALL}")

    counts = audit.report.counts()
    for kind in CANONICAL_KIND_ORDER:
        count = counts[kind]
        color = Fore.YELLOW if count else Fore.GREEN
        print(f"  {kind.value + ':':22s} {color}{count}{Style.RESET_ALL}")
    print(f"  {Fore.WHITE}{'='*50}{Style.RESET_ALL}\n")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="kubehealth",
        description=f"{PROJECT_NAME} - Kubernetes namespace health report for Slack",
    )
    parser.add_argument("--version", action="version", version=f"{PROJECT_NAME} {VERSION}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Audit the namespaces and post the report (default)")
    subparsers.add_parser("preview", help="Audit the namespaces and print the report without posting")

    return parser


def main(argv=None):
    init(autoreset=True)
    setup_logging()

    args = build_parser().parse_args(argv)

    if args.command == "preview":
        return cmd_preview(args)
    return cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
