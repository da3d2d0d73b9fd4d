"""jot: contextual notes that follow you between coding sessions.

Layout:
    ~/.config/jot/
    ├── jots.sqlite                    # contexts, jots, tags, metadata + FTS5 index
    └── jot.toml                       # optional configuration

Jots are grouped into contexts named after the current git repository and
branch (``repo`` on main/master, ``repo/branch`` elsewhere), falling back to
the working directory name and finally to ``general``.
"""

__version__ = "0.1.0"
