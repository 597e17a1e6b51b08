from fastapi import FastAPI

from linkage_api.src.config import config
from linkage_api.src.controllers.error_handlers import register_error_handlers
from linkage_api.src.controllers.health_controller import health_api
from linkage_api.src.controllers.linkage_controller import router as linkage_api
from linkage_api.src.controllers.logs_controller import router as logs_api
from linkage_api.src.controllers.metrics_controller import router as metrics_api
from linkage_api.src.controllers.pseudonymize_controller import router as pseudonymize_api
from linkage_api.src.controllers.relations_controller import router as relations_api
from linkage_api.src.utils.logging_utils import configure_logger


def create_app() -> FastAPI:
    configure_logger(config.app.log_level)
    app = FastAPI(title="Linkage API")
    register_error_handlers(app)
    app.include_router(health_api)
    app.include_router(linkage_api)
    app.include_router(relations_api)
    app.include_router(pseudonymize_api)
    app.include_router(metrics_api)
    app.include_router(logs_api)
    return app
