"""Entry point for running ThreadHub as a module.

Usage:
    python -m threadhub thread messages.json
    python -m threadhub --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env (e.g. THREADHUB_CONFIG_PATH) before any other imports

from threadhub.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
