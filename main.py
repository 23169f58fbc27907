"""
inboxsync - Main Application Entry Point
"""

from inboxsync.cli import cli

if __name__ == "__main__":
    cli()
