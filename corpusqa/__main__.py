"""Entry point for running corpusqa as a module: python -m corpusqa"""

from corpusqa.cli.commands import app

if __name__ == "__main__":
    app()
