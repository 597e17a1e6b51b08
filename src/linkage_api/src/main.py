import uvicorn

from linkage_api.src.app import create_app
from linkage_api.src.config import config

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "linkage_api.src.main:app",
        host="0.0.0.0",
        port=config.app.server_port,
        log_level=config.app.log_level.lower(),
    )
