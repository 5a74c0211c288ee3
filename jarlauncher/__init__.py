"""
jarlauncher - download, run and supervise a Java application.

Fetches a prebuilt jar, provisions a Java runtime when the host has none,
keeps the jar running with automatic restarts and serves a small HTTP
status page for hosting-platform health checks.
"""

__version__ = "0.1.0"
