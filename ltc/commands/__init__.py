"""
Command implementations behind the ``ltc`` CLI.

Each class groups the commands of one area and receives its collaborators
explicitly, so the commands run unchanged against in-memory fakes. The
typer layer in :mod:`ltc.cli` only parses arguments and wires clients.
"""
