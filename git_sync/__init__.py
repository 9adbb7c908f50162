"""Mirror commits, branches and tags from one working copy to many git remotes."""

from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
