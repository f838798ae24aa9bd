"""Entry point: ``python -m editagent``."""

from editagent.cli import main

if __name__ == "__main__":
    main()
