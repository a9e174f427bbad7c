"""Module entry point for the object store command-line client."""
from .cli import main


if __name__ == "__main__":
    main()
