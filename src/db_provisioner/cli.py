"""Command line entry point: ``db-provision``.

Loads configuration (defaults YAML, environment YAML, ``DB_PROVISION_*``
environment variables, then flags), runs the Provisioner and exits with the
result's exit code. Progress lines go to standard output; the failure
reason and remediation hint go to standard error.

Usage:
    db-provision --database AppDatabase --principal "CORP\\alice"
    python -m db_provisioner --endpoint "localhost\\SQLEXPRESS" --json
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from db_provisioner import __version__
from db_provisioner.core.base.results import ProvisioningResult, StepOutcome
from db_provisioner.core.config import (
    CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoader,
    ProvisioningConfig,
)
from db_provisioner.core.config.loader import ENVIRONMENTS
from db_provisioner.core.exceptions import ConfigurationError, ProvisioningError
from db_provisioner.provisioner import Provisioner
from db_provisioner.utils.logging import configure_logging, get_logger
from db_provisioner.utils.transcript import TranscriptTracker

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="db-provision",
        description=(
            "Make sure a database server is running, a database exists and a "
            "principal owns it. Safe to run any number of times."
        ),
    )
    parser.add_argument("--endpoint", help="Server address (default: LocalDB)")
    parser.add_argument("--database", help="Target database name")
    parser.add_argument(
        "--principal", help="Principal to authorize (default: current identity)"
    )
    parser.add_argument(
        "--backend", choices=["mssql", "snowflake"], help="Server family"
    )
    parser.add_argument(
        "--controller",
        choices=["auto", "localdb", "windows-service", "systemd", "none"],
        help="How to check and start the server",
    )
    parser.add_argument("--service-name", help="Service, unit or LocalDB instance")
    parser.add_argument(
        "--timeout", type=float, help="Seconds to wait for the server to start"
    )
    parser.add_argument(
        "--config-dir", default="config", help="Configuration directory"
    )
    parser.add_argument(
        "--environment",
        choices=list(ENVIRONMENTS),
        default="dev",
        help="Configuration environment",
    )
    parser.add_argument("--env-file", help="Path to a .env file to load")
    parser.add_argument(
        "--transcript", help="Append a transcript of server commands to this file"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the result as JSON"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More log output"
    )
    parser.add_argument(
        "--log-format", choices=["text", "json"], default="text", help="Log format"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate command line flags into configuration overrides."""
    overrides: Dict[str, Any] = {}
    for flag, key in (
        ("endpoint", "endpoint"),
        ("database", "database"),
        ("principal", "principal"),
        ("backend", "backend"),
        ("timeout", "startup_timeout"),
        ("transcript", "transcript_path"),
    ):
        value = getattr(args, flag)
        if value is not None:
            overrides[key] = value

    service: Dict[str, Any] = {}
    if args.controller is not None:
        service["controller"] = args.controller
    if args.service_name is not None:
        service["name"] = args.service_name
    if service:
        overrides["service"] = service
    return overrides


def load_config(args: argparse.Namespace) -> ProvisioningConfig:
    """Load and validate configuration.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    try:
        loader = ConfigLoader(config_dir=args.config_dir, environment=args.environment)
        return loader.load(
            ProvisioningConfig,
            config_file=CONFIG_FILE,
            overrides=overrides_from_args(args),
            env_prefix=ENV_PREFIX,
        )
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc}", original_error=exc
        ) from exc
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(str(exc), original_error=exc) from exc


def _verbosity(count: int) -> int:
    if count >= 2:
        return logging.DEBUG
    if count == 1:
        return logging.INFO
    return logging.WARNING


def _print_step(outcome: StepOutcome) -> None:
    print(outcome.message, flush=True)


def report_error(error: ProvisioningError) -> None:
    """Print the failing step, reason and remediation to standard error."""
    print(f"error: {error.step} failed: {error.reason}", file=sys.stderr)
    if error.remediation:
        print(f"hint: {error.remediation}", file=sys.stderr)


def report(result: ProvisioningResult, as_json: bool) -> None:
    """Print the final result."""
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.ok:
        print(
            f"Provisioned {result.database_name} on {result.endpoint} "
            f"for {result.principal}"
            + ("" if result.changed else " (no changes)")
        )
    if result.error is not None:
        report_error(result.error)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    configure_logging(level=_verbosity(args.verbose), fmt=args.log_format)

    if args.env_file:
        load_dotenv(dotenv_path=args.env_file)
    else:
        load_dotenv(find_dotenv(usecwd=True))

    try:
        config = load_config(args)
    except ConfigurationError as exc:
        report_error(exc)
        return exc.exit_code

    tracker = TranscriptTracker(config.transcript_path) if config.transcript_path else None
    provisioner = Provisioner(
        config,
        tracker=tracker,
        on_step=None if args.json else _print_step,
    )
    try:
        result = provisioner.run()
    except ConfigurationError as exc:
        report_error(exc)
        return exc.exit_code

    report(result, args.json)
    logger.debug("Exiting", extra={"exit_code": result.exit_code})
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
