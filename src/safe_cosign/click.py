"""Click Command and Group that format help text and report library errors."""

from typing import Any, Callable, cast

import click
from click.decorators import FC

from .exceptions import SafeCosignError


def help_option(*param_decls: str, **kwargs: Any) -> Callable[[FC], FC]:
    def show_help(ctx: click.Context, param: click.Parameter, value: bool) -> None:
        if value and not ctx.resilient_parsing:
            click.echo(ctx.get_help(), color=ctx.color)
            ctx.exit()

    kwargs.setdefault("is_flag", True)
    kwargs.setdefault("expose_value", False)
    kwargs.setdefault("is_eager", True)
    kwargs.setdefault("help", "show this message and exit")
    kwargs.setdefault("callback", show_help)
    return click.option(*(param_decls or ("--help",)), **kwargs)


def _get_help_option(
    cmd: click.Command, ctx: click.Context
) -> click.Option | None:
    if cmd._help_option is None:  # pyright: ignore[reportUnnecessaryComparison, reportPrivateUsage]
        # Apply help_option decorator and pop resulting option
        help_option(*cmd.get_help_option_names(ctx))(cmd)
        cmd._help_option = cmd.params.pop()  # pyright: ignore[reportPrivateUsage, reportAttributeAccessIssue]
    return cmd._help_option  # pyright: ignore[reportReturnType, reportPrivateUsage]


class Command(click.Command):
    def get_help_option(self, ctx: click.Context) -> click.Option | None:
        return _get_help_option(self, ctx)

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except SafeCosignError as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc


class Group(click.Group):
    def group(self, *args: Any, **kwargs: Any) -> click.Group:
        kwargs.setdefault("cls", Group)
        return cast(click.Group, super().group(*args, **kwargs))

    def command(self, *args: Any, **kwargs: Any) -> click.Command:
        kwargs.setdefault("cls", Command)
        return cast(click.Command, super().command(*args, **kwargs))

    def get_help_option(self, ctx: click.Context) -> click.Option | None:
        return _get_help_option(self, ctx)
