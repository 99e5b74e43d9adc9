"""Allow running kernctl as ``python -m kernctl``."""

from kernctl.cli.main import app

if __name__ == "__main__":
    app()
