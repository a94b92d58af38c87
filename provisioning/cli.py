"""
Operator CLI for the eks-quickstart stack.

Usage:
    eks-quickstart validate
    eks-quickstart preview --stack dev
    eks-quickstart up
    eks-quickstart kubeconfig --output ~/.kube/eks-quickstart
    eks-quickstart drift
    eks-quickstart destroy --yes
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from colorama import Fore, Style, init
from dotenv import load_dotenv
from pulumi.automation.errors import CommandError

from provisioning.settings import Settings, get_settings
from provisioning.stack_runner import StackRunner
from provisioning.validation import ConfigValidationError

logger = logging.getLogger(__name__)

EXIT_ENGINE_ERROR = 1
EXIT_INVALID_CONFIG = 2
EXIT_DRIFT = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eks-quickstart",
        description="Provision a VPC and an EKS cluster with Pulumi",
    )
    parser.add_argument("--stack", help="Pulumi stack name (default from settings)")
    parser.add_argument("--work-dir", help="Directory holding Pulumi.yaml")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default from settings)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("validate", help="Check stack config without touching AWS")
    subparsers.add_parser("preview", help="Show what an apply would change")
    subparsers.add_parser("up", help="Create or update the network and cluster")
    subparsers.add_parser(
        "drift", help="Refresh and exit non-zero if an apply would change anything"
    )

    outputs_parser = subparsers.add_parser("outputs", help="Print stack outputs as JSON")
    outputs_parser.add_argument("--show-secrets", action="store_true")

    kubeconfig_parser = subparsers.add_parser(
        "kubeconfig", help="Write a kubeconfig for the cluster"
    )
    kubeconfig_parser.add_argument(
        "--output",
        "-o",
        help="File to write (prints to stdout if omitted)",
    )

    destroy_parser = subparsers.add_parser("destroy", help="Destroy the cluster, then the network")
    destroy_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip the confirmation prompt"
    )

    return parser


def _settings_for(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.stack:
        overrides["pulumi_stack"] = args.stack
    if args.work_dir:
        overrides["pulumi_work_dir"] = args.work_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    return get_settings().model_copy(update=overrides)


def _confirm_destroy(stack_name: str) -> bool:
    answer = input(
        f"{Fore.YELLOW}Destroy every resource in stack '{stack_name}'? "
        f"Type the stack name to confirm: {Style.RESET_ALL}"
    )
    return answer.strip() == stack_name


def _print_changes(changes: dict[str, int]) -> None:
    if not changes:
        print(f"{Fore.GREEN}No changes.{Style.RESET_ALL}")
        return
    for op, count in sorted(changes.items()):
        print(f"  {Fore.YELLOW}{op}{Style.RESET_ALL}: {count}")


def run(args: argparse.Namespace, runner: StackRunner) -> int:
    """Execute one CLI command and return the process exit code."""
    stack_name = runner.settings.pulumi_stack

    if args.command == "validate":
        spec = runner.validate()
        print(json.dumps(spec.model_dump(mode="json"), indent=2))
        return 0

    if args.command == "preview":
        _print_changes(runner.preview())
        return 0

    if args.command == "up":
        outputs = runner.up()
        print(f"cluster_name: {outputs.get('cluster_name')}")
        print(f"cluster_endpoint: {outputs.get('cluster_endpoint')}")
        command = outputs.get("update_kubeconfig_command")
        if command:
            print(f"Configure kubectl with: {command}")
        return 0

    if args.command == "drift":
        changes = runner.check_drift()
        _print_changes(changes)
        return EXIT_DRIFT if changes else 0

    if args.command == "outputs":
        print(json.dumps(runner.outputs(show_secrets=args.show_secrets), indent=2, default=str))
        return 0

    if args.command == "kubeconfig":
        kubeconfig = runner.kubeconfig()
        if args.output:
            path = Path(args.output).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(kubeconfig)
            path.chmod(0o600)
            logger.info("Wrote kubeconfig to %s", path)
        else:
            print(kubeconfig, end="")
        return 0

    if args.command == "destroy":
        if not args.yes and not _confirm_destroy(stack_name):
            logger.info("Destroy cancelled")
            return 0
        runner.destroy()
        logger.info("Stack %s destroyed", stack_name)
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    init(autoreset=True)
    load_dotenv()

    args = build_parser().parse_args(argv)
    settings = _settings_for(args)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    runner = StackRunner(settings, on_output=print)

    try:
        return run(args, runner)
    except ConfigValidationError as e:
        logger.error("Configuration is invalid:")
        for error in e.errors:
            suffix = f" (got {error.value!r})" if error.value is not None else ""
            logger.error("  %s: %s%s", error.field, error.message, suffix)
        return EXIT_INVALID_CONFIG
    except CommandError as e:
        logger.error("Pulumi command failed: %s", e)
        return EXIT_ENGINE_ERROR
    except LookupError as e:
        logger.error("%s", e)
        return EXIT_ENGINE_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted; the stack may be partially updated. Run 'preview' to inspect it.")
        return EXIT_ENGINE_ERROR


if __name__ == "__main__":
    sys.exit(main())
