"""FastAPI management API for Beacon.

Example:
    ```python
    import uvicorn
    from beacon.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn beacon.api:app --reload
    ```
"""

from .app import app, create_app, register_exception_handlers
from .router import router

__all__ = [
    "app",
    "create_app",
    "register_exception_handlers",
    "router",
]
