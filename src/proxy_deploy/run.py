# run.py
# Entry point. Config and wiring only — no logic lives here.
#
#   proxy-deploy --config config/modules.json
#   proxy-deploy --dry-run
#   proxy-deploy --resume state.json --state-file state.json

import argparse

from proxy_deploy import display
from proxy_deploy.client import DryRunChainClient, HttpChainClient
from proxy_deploy.config import (
    load_modules,
    load_resume_state,
    load_settings,
    write_resume_state,
)
from proxy_deploy.errors import ClientError, ConfigurationError, DeploymentFailedError
from proxy_deploy.orchestrator import Orchestrator

DEFAULT_CONFIG = "config/modules.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxy-deploy",
        description="Deploy interdependent upgradeable proxy modules in dependency order.",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Module spec JSON file.")
    parser.add_argument(
        "--resume",
        metavar="PATH",
        help="Resume state JSON (module name → address) of modules already on chain.",
    )
    parser.add_argument(
        "--state-file",
        metavar="PATH",
        help="Where to write the resume state if a deployment fails.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use the offline client: deterministic addresses, no network.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    http_client = None

    try:
        specs = load_modules(args.config)
        resume = load_resume_state(args.resume) if args.resume else None
        if args.dry_run:
            client = DryRunChainClient()
        else:
            settings = load_settings()
            if not settings.rpc_url:
                raise ConfigurationError("CHAIN_RPC_URL is not set (use --dry-run to deploy offline).")
            client = http_client = HttpChainClient(
                settings.rpc_url, settings.api_key, settings.timeout
            )
        Orchestrator(client).run(specs, resume)
    except ConfigurationError as exc:
        display.halt(f"Configuration error: {exc}")
        return 1
    except DeploymentFailedError as exc:
        if args.state_file:
            try:
                write_resume_state(args.state_file, exc.resume_state())
            except OSError as write_exc:
                display.halt(f"Could not write resume state to {args.state_file}: {write_exc}")
            else:
                display.resume_state_written(args.state_file)
        display.halt(str(exc))
        return 1
    except ClientError as exc:
        display.halt(f"Chain client error: {exc}")
        return 1
    finally:
        if http_client is not None:
            http_client.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
