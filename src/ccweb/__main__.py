"""Allow ``python -m ccweb``."""

from ccweb.cli import app

if __name__ == "__main__":
    app()
