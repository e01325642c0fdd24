#!/usr/bin/env python3
"""
Gestión de migraciones del esquema de facturación con Alembic.

    python migrate.py create "mensaje"   # Nueva revisión (autogenerate)
    python migrate.py upgrade [rev]      # Aplicar hasta head (o rev)
    python migrate.py downgrade [rev]    # Revertir una revisión (o hasta rev)
    python migrate.py history            # Historial
    python migrate.py current            # Revisión aplicada
"""
import sys
from pathlib import Path

root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from app.core.config import settings


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    command.revision(get_alembic_config(), autogenerate=True, message=message)
    print(f"Migración creada: {message}")


def run_migrations(revision: str = "head"):
    command.upgrade(get_alembic_config(), revision)
    print(f"Esquema actualizado a {revision}")


def rollback_migration(revision: str = "-1"):
    command.downgrade(get_alembic_config(), revision)
    print(f"Rollback ejecutado ({revision})")


def show_history():
    command.history(get_alembic_config())


def show_current():
    command.current(get_alembic_config())


ACTIONS = {
    "upgrade": run_migrations,
    "downgrade": rollback_migration,
    "history": show_history,
    "current": show_current,
}


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    action, args = sys.argv[1], sys.argv[2:]

    if action == "create":
        if not args:
            print("Error: Se requiere un mensaje para la migración")
            sys.exit(1)
        create_migration(args[0])
    elif action in ("upgrade", "downgrade"):
        ACTIONS[action](*args[:1])
    elif action in ACTIONS:
        ACTIONS[action]()
    else:
        print(f"Acción desconocida: {action}")
        sys.exit(1)
