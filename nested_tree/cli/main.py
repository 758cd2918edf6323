"""Main CLI entry point for nested-tree maintenance commands."""

import click

from nested_tree.cli.commands import tree
from nested_tree.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="nested-tree")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Nested-tree CLI - maintenance of nested-set tables.

    \b
    Command Groups:
      tree       Rebuild, repair, check and show trees

    \b
    Quick Start:
      nested-tree tree check myapp.models:Category
      nested-tree tree repair myapp.models:Category
      nested-tree tree rebuild myapp.models:Category --reset
    """
    ctx.ensure_object(dict)


cli.add_command(tree.tree)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
