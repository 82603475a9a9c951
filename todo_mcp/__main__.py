"""Allow ``python -m todo_mcp``."""
from __future__ import annotations

from todo_mcp.service import main

if __name__ == "__main__":  # pragma: no cover – script entry
    main()
