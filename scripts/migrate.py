"""Run alembic migrations for the clinic scheduler database.

Usage:
    python scripts/migrate.py                  # upgrade to head
    python scripts/migrate.py down <revision>  # downgrade
    python scripts/migrate.py create <message> # autogenerate a revision
"""

import sys

from alembic import command
from alembic.config import Config


def _run(description: str, action) -> None:
    alembic_cfg = Config("alembic.ini")
    try:
        print(f"{description}...")
        action(alembic_cfg)
        print(f"✓ {description} done")
    except Exception as e:
        print(f"✗ {description} failed: {e}", file=sys.stderr)
        sys.exit(1)


def main(argv: list[str]) -> None:
    """Dispatch on the first argument."""
    if not argv:
        _run("Upgrading to head", lambda cfg: command.upgrade(cfg, "head"))
    elif argv[0] == "down" and len(argv) == 2:
        _run(f"Downgrading to {argv[1]}", lambda cfg: command.downgrade(cfg, argv[1]))
    elif argv[0] == "create" and len(argv) > 1:
        message = " ".join(argv[1:])
        _run(
            f"Creating migration '{message}'",
            lambda cfg: command.revision(cfg, message=message, autogenerate=True),
        )
    else:
        print(__doc__)
        sys.exit(2)


if __name__ == "__main__":
    main(sys.argv[1:])
