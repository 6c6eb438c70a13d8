"""workreplica CLI - sync and search a local replica of work items.

Uses tyro for type-driven CLI generation from dataclasses.
"""

from __future__ import annotations

from typing import Annotated

import tyro

from workreplica.cli.commands.metadata import Metadata
from workreplica.cli.commands.reset import Reset
from workreplica.cli.commands.search import Recent, Search
from workreplica.cli.commands.sync import Sync
from workreplica.cli.commands.test_connection import TestConnection
from workreplica.cli.commands.watch import Watch

_Sync = Annotated[Sync, tyro.conf.subcommand("sync")]
_Metadata = Annotated[Metadata, tyro.conf.subcommand("metadata")]
_Search = Annotated[Search, tyro.conf.subcommand("search")]
_Recent = Annotated[Recent, tyro.conf.subcommand("recent")]
_Reset = Annotated[Reset, tyro.conf.subcommand("reset")]
_TestConnection = Annotated[
    TestConnection, tyro.conf.subcommand("test-connection")
]
_Watch = Annotated[Watch, tyro.conf.subcommand("watch")]

Command = (
    _Sync | _Metadata | _Search | _Recent | _Reset | _TestConnection | _Watch
)


def main() -> int:
    """Entry point for the CLI."""
    # configure structlog (respects WORKREPLICA_DEBUG env var)
    from workreplica.logging_config import configure_logging

    configure_logging()

    try:
        cmd = tyro.cli(
            Command,
            prog="workreplica",
            description="Keep a searchable local replica of work items.",
        )
        return cmd.run()
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        from workreplica import console

        console.error(str(e))
        return 1
