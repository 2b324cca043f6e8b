import logging
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

# Get logger for this module
logger = logging.getLogger(__name__)

# Load environment variables conditionally
# Only load from .env when DATABASE_URL is not already defined by the environment
if not os.getenv("DATABASE_URL"):
    load_dotenv()

from warehouse_assignment.controllers.assignment_controller import (  # noqa: E402
    assignment_bp,
)
from warehouse_assignment.core.config import (  # noqa: E402
    get_log_json,
    get_log_level,
    log_assignment_config,
)
from warehouse_assignment.core.logging_config import setup_logging  # noqa: E402
from warehouse_assignment.db.session import create_tables  # noqa: E402
from warehouse_assignment.domain.interfaces import (  # noqa: E402
    IExclusionConfigStore,
    IUserDirectory,
    IWarehouseCatalog,
)
from warehouse_assignment.repositories.exclusion_config_repo import (  # noqa: E402
    ExclusionConfigRepository,
)
from warehouse_assignment.repositories.user_directory_repo import (  # noqa: E402
    UserDirectoryRepository,
)
from warehouse_assignment.services.assignment_service import (  # noqa: E402
    AssignmentEngine,
)
from warehouse_assignment.services.catalog_service import (  # noqa: E402
    WarehouseCatalogService,
)
from warehouse_assignment.services.exclusion_registry import (  # noqa: E402
    ExclusionRegistry,
)
from warehouse_assignment.services.sync_adapter import RemoteSyncAdapter  # noqa: E402


def _is_testing() -> bool:
    return os.getenv("TESTING", "").lower().strip() in ("true", "1", "yes")


def build_engine(
    catalog: Optional[IWarehouseCatalog] = None,
    directory: Optional[IUserDirectory] = None,
    config_store: Optional[IExclusionConfigStore] = None,
) -> AssignmentEngine:
    """Wire the engine to its stores and start following the directory."""
    directory = directory or UserDirectoryRepository()
    config_store = config_store or ExclusionConfigRepository()
    catalog = catalog or WarehouseCatalogService()

    sync = RemoteSyncAdapter(directory, config_store)
    registry = ExclusionRegistry(config_store, sync)
    engine = AssignmentEngine(catalog, registry, sync)
    engine.start(directory)
    return engine


def create_app(
    engine: Optional[AssignmentEngine] = None,
    catalog: Optional[IWarehouseCatalog] = None,
    directory: Optional[IUserDirectory] = None,
    config_store: Optional[IExclusionConfigStore] = None,
) -> Flask:
    env = os.getenv("FLASK_ENV", "development")
    is_production = env == "production"
    testing = _is_testing()

    app = Flask(__name__)
    if testing:
        app.config["TESTING"] = True

    setup_logging(
        app=app,  # Pass app to register request/response hooks
        log_level=get_log_level(),
        log_to_file=os.getenv("LOG_TO_FILE", "1") == "1" and not testing,
        use_json_format=is_production or get_log_json(),
    )
    logger.info(
        "Logging configured",
        extra={"context": {"environment": env, "testing": testing}},
    )
    log_assignment_config()

    # Sentry error tracking, only when a DSN is configured
    sentry_dsn = os.getenv("SENTRY_DSN")
    if sentry_dsn:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            environment=env,
            release=os.getenv("GIT_SHA", "unknown"),
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=0.1,
            send_default_pii=False,
        )
        logger.info("Sentry initialized", extra={"context": {"environment": env}})

    # Prometheus metrics at /metrics; tests get a private registry because
    # create_app runs once per test
    from prometheus_client import CollectorRegistry
    from prometheus_flask_exporter import PrometheusMetrics

    metrics = PrometheusMetrics(
        app, registry=CollectorRegistry() if testing else None
    )
    try:
        metrics.info(
            "app_info",
            "Application information",
            version=os.getenv("GIT_SHA", "unknown"),
            environment=env,
        )
    except ValueError as e:
        # Metric already registered (create_app called more than once)
        logger.debug(
            "app_info metric already registered",
            extra={"context": {"error": str(e)}},
        )

    if engine is None:
        create_tables()
        engine = build_engine(catalog, directory, config_store)

    app.extensions["assignment_engine"] = engine
    app.register_blueprint(assignment_bp)

    logger.info(
        "Application created",
        extra={"context": {"blueprints": list(app.blueprints.keys())}},
    )
    return app
