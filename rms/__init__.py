"""
RMS user accounts, rights and sessions.

This package provides the user entity with its capability-style rights, the
per-process user registry, and the session layer that logs users in with a
password, a federated identity or an auto-login cookie. :mod:`rms.auth` and
:mod:`rms.routes` plug it into a Flask application; :mod:`rms.cli` manages
rights from a terminal.
"""
