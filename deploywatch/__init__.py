"""
Deploywatch - keeps a supervised application in sync with a GitHub branch.

Polls the branch tip, and on every new commit stops the application, pulls
the working copy, installs declared dependencies, restarts it and sends an
email notification.
"""

__version__ = "0.1.0"
