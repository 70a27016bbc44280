"""
Entry point for running leet-recall as a module.

Usage:
    python -m src.review review
    python -m src.review schedule
    python -m src.review --help
"""
from .recall_cli import main

if __name__ == "__main__":
    main()
