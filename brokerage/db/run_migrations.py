"""
Programmatic Alembic runner for the brokerage schema.

There is no alembic.ini: the script location is this package's migrations
directory and the URL comes from brokerage.db.config. The API calls main()
at startup (RUN_MIGRATIONS_ON_STARTUP); operators use the module directly:

    python -m brokerage.db.run_migrations upgrade head
    python -m brokerage.db.run_migrations downgrade -1
    python -m brokerage.db.run_migrations current
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List

from alembic import command
from alembic.config import Config

from brokerage.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def build_config() -> Config:
    """Alembic Config pointing at the bundled migrations and the configured database."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Offline mode reads this; online mode (env.py) builds its own async engine.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


def _upgrade(cfg: Config, args: List[str]) -> None:
    command.upgrade(cfg, args[0] if args else "head")


def _downgrade(cfg: Config, args: List[str]) -> None:
    command.downgrade(cfg, args[0] if args else "-1")


def _stamp(cfg: Config, args: List[str]) -> None:
    command.stamp(cfg, args[0] if args else "head")


def _show(cfg: Config, args: List[str]) -> None:
    if not args:
        raise SystemExit("Usage: show <revision>")
    command.show(cfg, args[0])


COMMANDS: Dict[str, Callable[[Config, List[str]], None]] = {
    "upgrade": _upgrade,
    "downgrade": _downgrade,
    "stamp": _stamp,
    "show": _show,
    "current": lambda cfg, args: command.current(cfg),
    "heads": lambda cfg, args: command.heads(cfg),
    "history": lambda cfg, args: command.history(cfg),
}


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Run one Alembic command, e.g. main(["upgrade", "head"])."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        raise SystemExit(f"No Alembic command given. One of: {', '.join(sorted(COMMANDS))}")

    name, rest = args[0], args[1:]
    handler = COMMANDS.get(name)
    if handler is None:
        raise SystemExit(f"Unsupported Alembic command: {name}")

    logger.info("alembic %s %s", name, " ".join(rest))
    handler(build_config(), rest)


if __name__ == "__main__":
    main()
