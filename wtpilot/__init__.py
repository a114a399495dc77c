"""
WTPILOT — worktree + PR provisioning for development tasks.
"""

__version__ = "0.3.0"
__codename__ = "WTPILOT"
__tagline__ = "One task. One branch. One worktree."
