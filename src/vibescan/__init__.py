"""vibescan - AI code review for hosted repositories.

vibescan fetches a repository's files straight from the hosting provider,
sorts them into priority tiers (security, core logic, supporting code) and
asks an AI service to review one tier at a time. Between tiers the caller
sees what was spent and approves or stops before more tokens are used.
"""

__version__ = "0.1.0"
__author__ = "vibescan Contributors"
