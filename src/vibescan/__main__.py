"""Entry point for running vibescan as a module.

Usage:
    python -m vibescan [command] [options]

Example:
    python -m vibescan estimate https://github.com/owner/repo
    python -m vibescan analyze https://github.com/owner/repo --api-key sk-...
"""

from vibescan.cli import app

if __name__ == "__main__":
    app()
