from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.table import Table

from notelens.cli.context import CLIContext
from notelens.core.config import SUPPORTED_PROVIDERS, EmbeddingSettings


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("config", help="Embedding provider configuration")
    config_subparsers = parser.add_subparsers(dest="config_command", required=True)

    show = config_subparsers.add_parser("show", help="Show the active embedding configuration")
    show.set_defaults(handler=run_show)

    set_cmd = config_subparsers.add_parser("set", help="Change the embedding provider and rebuild the store")
    _add_settings_arguments(set_cmd)
    set_cmd.set_defaults(handler=run_set)

    test = config_subparsers.add_parser("test", help="Check that a provider answers and report its vector size")
    _add_settings_arguments(test)
    test.set_defaults(handler=run_test)

    models = config_subparsers.add_parser("models", help="List embedding models the provider offers")
    _add_settings_arguments(models)
    models.set_defaults(handler=run_models)


def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", choices=SUPPORTED_PROVIDERS)
    parser.add_argument("--base-url")
    parser.add_argument("--model")
    parser.add_argument("--api-key")


def _settings_from_args(args: argparse.Namespace, ctx: CLIContext) -> EmbeddingSettings:
    current = ctx.service().get_config()
    payload = current.to_json()
    if args.provider and args.provider != current.provider:
        payload = {"provider": args.provider}
    for key, value in (("baseUrl", args.base_url), ("model", args.model), ("apiKey", args.api_key)):
        if value is not None:
            payload[key] = value
    return EmbeddingSettings.from_json(payload)


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    settings = ctx.service().get_config()
    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Provider: {settings.provider}",
                    f"Base URL: {settings.base_url}",
                    f"Model: {settings.model}",
                    f"API key: {settings.masked_api_key() or '(none)'}",
                    f"Config file: {ctx.paths.config_path}",
                ]
            ),
            title="Embedding Config",
        )
    )
    return 0


def run_set(args: argparse.Namespace, ctx: CLIContext) -> int:
    settings = _settings_from_args(args, ctx)
    result = ctx.service().update_config(settings)
    ctx.console.print(
        f"[green]Saved[/green] {settings.provider}/{settings.model} (dimension {result.dimension})"
    )
    if result.rebuilt:
        ctx.console.print(
            "[yellow]Embedding size changed; the index was cleared. Run `notelens reindex --external`.[/yellow]"
        )
    return 0


def run_test(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ctx.service().test_connection(_settings_from_args(args, ctx))
    if result.success:
        ctx.console.print(f"[green]Connection OK[/green] (dimension {result.dimension})")
        return 0
    ctx.console.print(f"[red]Connection failed[/red] {result.error}")
    return 1


def run_models(args: argparse.Namespace, ctx: CLIContext) -> int:
    settings = _settings_from_args(args, ctx)
    names = ctx.service().list_models(settings)
    table = Table(title=f"{settings.provider} models ({len(names)})")
    table.add_column("Model")
    for name in names:
        table.add_row(name)
    ctx.console.print(table)
    return 0
