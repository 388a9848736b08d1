"""Allow `python -m stack_acceptance`."""

from stack_acceptance.cli import main

if __name__ == "__main__":
    main()
