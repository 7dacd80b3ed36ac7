from __future__ import annotations

import uvicorn

from solveur.apps.api.main import create_app
from solveur.core.config import get_settings


def main() -> None:
    # Serve the API with env-driven bind settings for compose and local runs.
    settings = get_settings()
    app = create_app()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
