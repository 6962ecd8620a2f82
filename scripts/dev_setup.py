"""Write the local .env file and initialise the SQLite database."""
from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import Dict

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from mystery_writer import create_app, db  # noqa: E402

DEFAULT_ENV_PATH = REPO_ROOT / ".env"
BACKUP_SUFFIX = ".bak"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Create or update a .env file with the Flask and completion API settings required "
            "for local development and initialize the SQLite database."
        )
    )
    parser.add_argument(
        "--flask-app",
        default="mystery_writer:create_app",
        help="Entry point used by Flask (default: mystery_writer:create_app)",
    )
    parser.add_argument(
        "--secret-key",
        help="Secret key for Flask sessions. Existing values are preserved when omitted.",
    )
    parser.add_argument("--openai-api-key", help="API key for the completion endpoint.")
    parser.add_argument("--openai-model", help="Chat model name, e.g. gpt-4o-mini.")
    parser.add_argument(
        "--openai-base-url",
        help="Base URL of an OpenAI-compatible endpoint (optional).",
    )
    parser.add_argument(
        "--drain-interval",
        type=float,
        help="Seconds between completion queue drain checks (optional).",
    )
    parser.add_argument(
        "--database-url",
        help="Override SQLALCHEMY_DATABASE_URI / DATABASE_URL (optional).",
    )
    parser.add_argument(
        "--env-path",
        type=Path,
        default=DEFAULT_ENV_PATH,
        help="Path to the .env file that should be created/updated.",
    )
    parser.add_argument(
        "--skip-db",
        action="store_true",
        help="Only update the .env file without touching the database.",
    )
    return parser.parse_args(argv)


def read_env(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    data: Dict[str, str] = {}
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        data[key.strip()] = value.strip()
    return data


def write_env(path: Path, values: Dict[str, str]) -> None:
    if path.exists():
        backup_path = path.with_suffix(path.suffix + BACKUP_SUFFIX)
        shutil.copy(path, backup_path)
        print(f"Existing {path.name} backed up to {backup_path.name}.")
    lines = [f"{key}={value}" for key, value in values.items()]
    path.write_text("\n".join(lines) + "\n")
    print(f"Updated environment variables written to {path}.")


def collect_env_updates(args: argparse.Namespace) -> Dict[str, str]:
    updates = {"FLASK_APP": args.flask_app}
    optional = {
        "SECRET_KEY": args.secret_key,
        "OPENAI_API_KEY": args.openai_api_key,
        "OPENAI_MODEL": args.openai_model,
        "OPENAI_BASE_URL": args.openai_base_url,
        "DATABASE_URL": args.database_url,
        "COMPLETION_DRAIN_INTERVAL": None if args.drain_interval is None else str(args.drain_interval),
    }
    updates.update({key: value for key, value in optional.items() if value})
    return updates


def update_env_file(args: argparse.Namespace) -> Dict[str, str]:
    env_data = read_env(args.env_path)
    env_data.update(collect_env_updates(args))
    write_env(args.env_path, env_data)
    return env_data


def initialize_database() -> None:
    app = create_app()
    with app.app_context():
        db.create_all()
    print("Database initialized (instance/mystery_writer.db).")


def _redact(key: str, value: str) -> str:
    if key in {"SECRET_KEY", "OPENAI_API_KEY"} and value:
        return value[:4] + "…"
    return value


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    env_values = update_env_file(args)

    if not args.skip_db:
        initialize_database()
    else:
        print("Database initialization skipped.")

    print("\nSetup complete! Summary:")
    for key in sorted(env_values):
        print(f"  {key}={_redact(key, env_values[key])}")


if __name__ == "__main__":
    main()
