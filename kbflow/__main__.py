# kbflow/__main__.py
"""Run the kbflow CLI with `python -m kbflow`."""

from kbflow.cli.app import app

if __name__ == "__main__":
    app()
