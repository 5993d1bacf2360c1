import logging

from flask import Flask, jsonify

from config import Config
from extensions import db, migrate
from routes.fee_schedule_routes import fee_schedule_bp


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app.logger.setLevel(level)


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)

    # Load configuration from Config (falls back to sensible defaults inside Config)
    app.config.from_object(config_object)
    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    # Make sure models are registered on the metadata for create_all/migrations
    import models  # noqa: F401

    app.register_blueprint(fee_schedule_bp)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    return app


app = create_app()


if __name__ == "__main__":
    if app.config.get("OVERDUE_JOB_ENABLED"):
        from scheduler import start_scheduler

        start_scheduler(app)
    app.run(debug=False)
