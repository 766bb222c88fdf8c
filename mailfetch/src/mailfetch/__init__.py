"""
Module: mailfetch.__init__

What:
  Aggregate package exports for the mailfetch read-only IMAP client and expose
  the primary namespace segments (configuration, message decoding core, IMAP
  handling, and utilities).

Why:
  Centralising the exports keeps entry points stable while the internal layout
  evolves. Importers rely on these names to fetch messages, run the push loop,
  or decode ``.eml`` files without touching private modules.

How:
  Provide an explicit ``__all__`` declaration that enumerates the public
  subpackages.

Interfaces:
  - config: Configuration schema loaders and validators.
  - core: Value records, header codec, MIME walker, and projector.
  - imap: Connection wrapper, folder handles, batch fetcher, and IDLE loop.
  - utils: Structured logging and MIME parsing helpers.

Invariants:
  - Nothing in the package modifies a mailbox; folders are opened read-only.
"""

__version__ = "0.1.0"

__all__ = [
    "config",
    "core",
    "imap",
    "utils",
]
