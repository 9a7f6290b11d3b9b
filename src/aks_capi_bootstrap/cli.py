#!/usr/bin/env python
"""Command-line interface for aks-capi-bootstrap.

This module provides the `aks-capi` command group. Options shared by every
command are collected into a Settings instance; the commands then hand off
to the flows in bootstrap.py.
"""

import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from icecream import ic
from rich.markup import escape

from aks_capi_bootstrap import __version__, console
from aks_capi_bootstrap.bootstrap import run_check, run_cleanup_flow, run_setup
from aks_capi_bootstrap.exceptions import BootstrapError
from aks_capi_bootstrap.models import (
    DEFAULT_CLUSTER_NAME,
    DEFAULT_GITHUB_REPO,
    DEFAULT_KUBERNETES_VERSION,
    DEFAULT_LOCATION,
    LogLevel,
    Settings,
)

_LOG_LEVELS = ["DEBUG", "INFO", "WARN", "WARNING", "ERROR"]

_SHARED_OPTIONS = (
    click.option("--subscription-id", envvar="AZURE_SUBSCRIPTION_ID", default="", help="Azure subscription id"),
    click.option("--location", envvar="AZURE_LOCATION", default=DEFAULT_LOCATION, show_default=True, help="Azure region"),
    click.option(
        "--resource-group",
        envvar="AZURE_RESOURCE_GROUP",
        default="",
        help="resource group for the management cluster [default: rg-mgmt-aks-<location>]",
    ),
    click.option(
        "--cluster-name",
        envvar="AKS_CLUSTER_NAME",
        default=DEFAULT_CLUSTER_NAME,
        show_default=True,
        help="AKS management cluster name",
    ),
    click.option(
        "--kubernetes-version",
        envvar="AKS_KUBERNETES_VERSION",
        default=DEFAULT_KUBERNETES_VERSION,
        show_default=True,
        help="AKS version, or 'auto' for the region's default",
    ),
    click.option(
        "--aad-admin-group-id",
        envvar="AAD_ADMIN_GROUP_ID",
        default="",
        help="Entra group granted cluster admin [default: signed-in user]",
    ),
    click.option("--github-org", envvar="GITHUB_ORG", default="", help="GitHub user or organization for Flux"),
    click.option(
        "--github-repo",
        envvar="GITHUB_REPO",
        default=DEFAULT_GITHUB_REPO,
        show_default=True,
        help="GitHub repository Flux bootstraps into",
    ),
    click.option(
        "--backstage-dir",
        envvar="BACKSTAGE_DIR",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="directory for the Backstage app [default: ./backstage]",
    ),
    click.option(
        "--log-level",
        envvar="AKS_CAPI_LOG_LEVEL",
        type=click.Choice(_LOG_LEVELS, case_sensitive=False),
        default="INFO",
        show_default=True,
        help="minimum level written to the console and the log file",
    ),
    click.option(
        "--log-dir",
        envvar="AKS_CAPI_LOG_DIR",
        type=click.Path(file_okay=False, path_type=Path),
        default=Path("."),
        help="directory for the run's log file [default: current directory]",
    ),
    click.option("--debug", required=False, is_flag=True, help="print debug information"),
)


def shared_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the options every command accepts."""
    for option in reversed(_SHARED_OPTIONS):
        func = option(func)
    return func


def _prepare(command: str, options: dict[str, Any]) -> Settings:
    """Configure debugging and logging, then build the run's settings.

    The GitHub token is only read from GITHUB_TOKEN (or prompted for) so
    that it never appears in the process list.
    """
    if not options.pop("debug"):
        ic.disable()

    level = LogLevel.parse(options.pop("log_level"))
    log_dir: Path = options.pop("log_dir")
    console.configure(level=level, log_dir=log_dir, command=command)

    backstage_dir = options.pop("backstage_dir")
    if backstage_dir is not None:
        options["backstage_dir"] = backstage_dir.resolve()

    settings = Settings(log_level=level, github_token=os.environ.get("GITHUB_TOKEN", ""), **options)
    ic(settings)
    return settings


def _fail(error: Exception) -> None:
    if isinstance(error, BootstrapError):
        console.error(escape(str(error)))
    else:
        console.error(f"Unexpected {type(error).__name__}: {escape(str(error))}")
    log_file = console.log_file()
    if log_file is not None:
        console.error(f"See {escape(str(log_file))} for the full run log.")
    sys.exit(1)


@click.group(help="Provision an AKS management cluster with Cluster API, FluxCD and Backstage")
@click.version_option(__version__, "--version", "-v", message="%(version)s", help="print version")
def cli() -> None:
    """Entry point for the aks-capi command group."""


@cli.command(help="Verify that the required CLI tools are installed")
@shared_options
@click.option("--with-backstage", is_flag=True, help="also check node and yarn")
def check(with_backstage: bool, **options: Any) -> None:
    """Run the tool verification only.

    Args:
        with_backstage: Include the Backstage toolchain.
        **options: Shared options.

    """
    _prepare("check", options)
    try:
        run_check(with_backstage=with_backstage)
    except BootstrapError as e:
        _fail(e)
    except Exception as e:
        ic(e)
        _fail(e)


@cli.command(help="Create the management cluster and install Cluster API and FluxCD")
@shared_options
@click.option("--with-backstage", is_flag=True, help="also install Backstage with the cluster template")
def setup(with_backstage: bool, **options: Any) -> None:
    """Run the provisioning flow.

    Args:
        with_backstage: Install Backstage after Flux.
        **options: Shared options.

    """
    settings = _prepare("setup", options)
    try:
        run_setup(settings, with_backstage=with_backstage)
    except BootstrapError as e:
        _fail(e)
    except Exception as e:
        ic(e)
        _fail(e)


@cli.command(help="Interactively delete the resources created by setup")
@shared_options
def cleanup(**options: Any) -> None:
    """Run the interactive teardown. Cancelling at the first prompt exits 0."""
    settings = _prepare("cleanup", options)
    try:
        run_cleanup_flow(settings)
    except BootstrapError as e:
        _fail(e)
    except Exception as e:
        ic(e)
        _fail(e)


if __name__ == "__main__":
    cli()
