"""Administrative command-line interface."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from functools import wraps
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

import click
from pydantic import BaseModel, ValidationError
from safir.click import display_help

from .config import load_config
from .constants import CONFIG_PATH_ENV
from .exceptions import PorthorError
from .factory import Factory
from .models.enums import IdClass
from .models.identity import NewAccount

__all__ = [
    "create_group",
    "delete_account",
    "delete_group",
    "help",
    "list_accounts",
    "list_groups",
    "main",
    "next_id",
    "provision",
    "update_account",
]

_config_path_option = click.option(
    "--config-path",
    envvar=CONFIG_PATH_ENV,
    type=click.Path(path_type=Path),
    default=None,
    help="Application configuration file.",
)


P = ParamSpec("P")
T = TypeVar("T")


def _convert_exception(f: Callable[P, T]) -> Callable[P, T]:
    """Report Porthor errors as command-line errors without a traceback."""

    @wraps(f)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return f(*args, **kwargs)
        except PorthorError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _create_factory(config_path: Path | None) -> Factory:
    """Load the configuration, set up logging, and create a factory."""
    try:
        config = load_config(config_path)
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    config.configure_logging()
    return Factory.standalone(config)


def _echo_json(data: BaseModel | Sequence[BaseModel]) -> None:
    """Write a model or a list of models as JSON."""
    result: Any
    if isinstance(data, BaseModel):
        result = data.model_dump(mode="json")
    else:
        result = [d.model_dump(mode="json") for d in data]
    click.echo(json.dumps(result, indent=2))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Administrative command-line interface for porthor."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
@click.argument("first_name")
@click.argument("last_name", default="")
@click.option("--email", required=True, help="Email address of the user.")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Initial password (prompted for if not given).",
)
@_config_path_option
@_convert_exception
def provision(
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    config_path: Path | None,
) -> None:
    """Create an account and its personal group.

    The login name is derived from the first and last names. The result is
    printed as JSON and says whether the records went to the directory or
    were saved locally for later import.
    """
    factory = _create_factory(config_path)
    try:
        request = NewAccount(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
        )
    except ValidationError as e:
        raise click.UsageError(str(e)) from e
    provisioning_service = factory.create_provisioning_service()
    outcome = provisioning_service.provision_account(request)
    _echo_json(outcome)


@main.command()
@click.argument("name")
@click.option("--gid", type=int, default=None, help="GID of the group.")
@click.option(
    "--member", "members", multiple=True, help="Login name of a member."
)
@_config_path_option
@_convert_exception
def create_group(
    *,
    name: str,
    gid: int | None,
    members: tuple[str, ...],
    config_path: Path | None,
) -> None:
    """Create a standalone group."""
    factory = _create_factory(config_path)
    provisioning_service = factory.create_provisioning_service()
    outcome = provisioning_service.create_group(name, gid, members)
    _echo_json(outcome)


@main.command()
@click.argument("name")
@_config_path_option
@_convert_exception
def delete_group(*, name: str, config_path: Path | None) -> None:
    """Remove a group from the local group store."""
    factory = _create_factory(config_path)
    provisioning_service = factory.create_provisioning_service()
    provisioning_service.delete_group(name)


@main.command()
@click.argument("uid")
@click.option("--mail", default=None, help="New email address.")
@click.option("--shell", default=None, help="New login shell.")
@click.option("--cn", default=None, help="New display name.")
@_config_path_option
@_convert_exception
def update_account(
    *,
    uid: str,
    mail: str | None,
    shell: str | None,
    cn: str | None,
    config_path: Path | None,
) -> None:
    """Change attributes of an account in the directory."""
    factory = _create_factory(config_path)
    provisioning_service = factory.create_provisioning_service()
    provisioning_service.update_account(
        uid, mail=mail, login_shell=shell, cn=cn
    )


@main.command()
@click.argument("uid")
@_config_path_option
@_convert_exception
def delete_account(*, uid: str, config_path: Path | None) -> None:
    """Delete an account from the directory."""
    factory = _create_factory(config_path)
    provisioning_service = factory.create_provisioning_service()
    provisioning_service.delete_account(uid)


@main.command()
@_config_path_option
@_convert_exception
def list_accounts(*, config_path: Path | None) -> None:
    """List accounts as JSON."""
    factory = _create_factory(config_path)
    query_service = factory.create_query_service()
    _echo_json(query_service.list_accounts())


@main.command()
@_config_path_option
@_convert_exception
def list_groups(*, config_path: Path | None) -> None:
    """List groups as JSON."""
    factory = _create_factory(config_path)
    query_service = factory.create_query_service()
    _echo_json(query_service.list_groups())


@main.command()
@click.argument(
    "id_class", type=click.Choice([c.value for c in IdClass]), nargs=1
)
@_config_path_option
@_convert_exception
def next_id(*, id_class: str, config_path: Path | None) -> None:
    """Show the next free UID or GID without assigning it."""
    factory = _create_factory(config_path)
    allocator = factory.create_allocator()
    click.echo(str(allocator.allocate(IdClass(id_class))))
