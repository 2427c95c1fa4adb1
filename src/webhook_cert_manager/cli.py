"""Command line entry point for the webhook cert manager."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from kubernetes.client import ApiException
from rich import print as rich_print
from rich.logging import RichHandler
from rich.table import Table

from .config import ManagerConfig
from .errors import CertManagerError, SecretNotFoundError
from .kube import CertManagerAPI
from .operations.certs import SecretCertsHandler
from .operations.controller import ALL_KINDS, WebhookConfigurationController, build_controller
from .resources.element import WebhookType, new_webhook_element
from .utils import b64decode_value

app = typer.Typer(help="Provision webhook serving certificates and inject their CA bundles.")

_LOG = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, log_time_format="%X")],
    )


def _load_config(
    config_path: Optional[Path],
    kube_context: Optional[str],
    kubeconfig: Optional[Path],
    in_cluster: bool = False,
) -> ManagerConfig:
    manager_config = ManagerConfig.from_file(config_path) if config_path else ManagerConfig()
    if kube_context:
        manager_config.context.context = kube_context
    if kubeconfig:
        manager_config.context.kubeconfig = str(kubeconfig)
    if in_cluster:
        manager_config.context.in_cluster = True
    return manager_config


def _create_controller(manager_config: ManagerConfig) -> WebhookConfigurationController:
    return build_controller(manager_config)


def _kinds(kind: Optional[WebhookType]) -> List[WebhookType]:
    return [kind] if kind else list(ALL_KINDS)


ConfigOption = typer.Option(None, "--config", help="Path to the cert manager configuration file.")
ContextOption = typer.Option(None, "--context", help="Override kubeconfig context.")
KubeconfigOption = typer.Option(None, help="Path to kubeconfig file.")
InClusterOption = typer.Option(False, "--in-cluster", help="Use the in-cluster service account.")
VerboseOption = typer.Option(False, "--verbose", help="Enable debug logging.")


@app.command("sync")
def sync(
    kind: WebhookType = typer.Argument(..., help="Kind of webhook configuration."),
    name: str = typer.Argument(..., help="Name of the webhook configuration."),
    config_path: Optional[Path] = ConfigOption,
    kube_context: Optional[str] = ContextOption,
    kubeconfig: Optional[Path] = KubeconfigOption,
    in_cluster: bool = InClusterOption,
    verbose: bool = VerboseOption,
) -> None:
    """Sync certificates and CA bundles for one webhook configuration."""

    _configure_logging(verbose)
    controller = _create_controller(_load_config(config_path, kube_context, kubeconfig, in_cluster))
    try:
        result = controller.reconcile(kind, name)
    except (CertManagerError, ApiException) as exc:
        _LOG.error("Failed to sync %s webhook configuration %s: %s", kind.value, name, exc)
        raise typer.Exit(code=1)

    if result is None:
        rich_print(f"[yellow]{kind.value} webhook configuration {name} not found.[/yellow]")
        raise typer.Exit(code=1)
    if result.changed:
        rich_print(f"[green]Updated CA bundles of {kind.value} webhook configuration {name}.[/green]")
    else:
        rich_print(f"[green]{kind.value} webhook configuration {name} is up to date.[/green]")


@app.command("sync-all")
def sync_all(
    kind: Optional[WebhookType] = typer.Option(None, help="Only sync configurations of this kind."),
    config_path: Optional[Path] = ConfigOption,
    kube_context: Optional[str] = ContextOption,
    kubeconfig: Optional[Path] = KubeconfigOption,
    in_cluster: bool = InClusterOption,
    verbose: bool = VerboseOption,
) -> None:
    """Sync every annotated webhook configuration in the cluster."""

    _configure_logging(verbose)
    controller = _create_controller(_load_config(config_path, kube_context, kubeconfig, in_cluster))
    results, failures = controller.sync_all(_kinds(kind))

    table = Table(title="Webhook configurations")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Webhooks")
    table.add_column("Result")
    for result in results:
        table.add_row(
            result.kind.value,
            str(result.name),
            ", ".join(result.synced_webhooks) or "-",
            "updated" if result.changed else "unchanged",
        )
    for key, exc in failures.items():
        failed_kind, _, failed_name = key.partition("/")
        table.add_row(failed_kind, failed_name, "-", f"[red]failed: {exc}[/red]")
    rich_print(table)

    if failures:
        raise typer.Exit(code=1)


@app.command("watch")
def watch(
    kind: Optional[WebhookType] = typer.Option(None, help="Only watch configurations of this kind."),
    timeout: int = typer.Option(60, help="Seconds to watch each kind before switching."),
    config_path: Optional[Path] = ConfigOption,
    kube_context: Optional[str] = ContextOption,
    kubeconfig: Optional[Path] = KubeconfigOption,
    in_cluster: bool = InClusterOption,
    verbose: bool = VerboseOption,
) -> None:
    """Watch webhook configurations and sync them as they change."""

    _configure_logging(verbose)
    controller = _create_controller(_load_config(config_path, kube_context, kubeconfig, in_cluster))
    kinds = _kinds(kind)
    _LOG.info("Watching %s webhook configurations", ", ".join(k.value for k in kinds))
    controller.watch(kinds, timeout_seconds=timeout)


@app.command("inspect")
def inspect(
    kind: WebhookType = typer.Argument(..., help="Kind of webhook configuration."),
    name: str = typer.Argument(..., help="Name of the webhook configuration."),
    config_path: Optional[Path] = ConfigOption,
    kube_context: Optional[str] = ContextOption,
    kubeconfig: Optional[Path] = KubeconfigOption,
    in_cluster: bool = InClusterOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show the certificate status of each webhook without changing anything."""

    _configure_logging(verbose)
    controller = _create_controller(_load_config(config_path, kube_context, kubeconfig, in_cluster))
    api: CertManagerAPI = controller.api
    try:
        webhook_configuration = api.read_webhook_configuration(kind, name)
        certs_handler = controller.syncer.certs_handler_factory.new(webhook_configuration)
    except (CertManagerError, ApiException) as exc:
        _LOG.error("Failed to read %s webhook configuration %s: %s", kind.value, name, exc)
        raise typer.Exit(code=1)

    table = Table(title=f"Webhooks of {kind.value} webhook configuration {name}")
    table.add_column("Webhook")
    table.add_column("Secret")
    table.add_column("Status")
    for webhook in new_webhook_element(webhook_configuration).webhooks:
        if certs_handler.skip(webhook.name):
            table.add_row(webhook.name, "-", "skipped")
            continue
        secret_ref = ""
        if isinstance(certs_handler, SecretCertsHandler):
            secret_ref = certs_handler.webhook_to_secret[webhook.name].strip()
        try:
            certs = certs_handler.read(webhook.name)
        except SecretNotFoundError:
            table.add_row(webhook.name, secret_ref, "[yellow]secret missing[/yellow]")
            continue
        except CertManagerError as exc:
            table.add_row(webhook.name, secret_ref, f"[red]{exc}[/red]")
            continue
        if certs.ca_cert in b64decode_value(webhook.client_config.ca_bundle):
            table.add_row(webhook.name, secret_ref, "[green]CA injected[/green]")
        else:
            table.add_row(webhook.name, secret_ref, "[yellow]CA missing from bundle[/yellow]")
    rich_print(table)
