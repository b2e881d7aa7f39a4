import logging

from flask import Flask
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from utils.errors import AppError
from utils.responses import fail

# Import Blueprints
from routes.auth import auth_bp
from routes.companies import companies_bp
from routes.users import users_bp
from tasks.routes import tasks_bp


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(e):
        if e.status_code >= 500:
            return fail("Internal server error", e.status_code)
        return fail(e.message, e.status_code, errors=e.errors)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return fail(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        # original error stays in the server log, never in the response
        db.session.rollback()
        app.logger.exception("Unhandled error: %s", e)
        return fail("Internal server error", 500)


def create_app(config_class=Config):
    logging.basicConfig(level=config_class.LOG_LEVEL)
    logging.getLogger("werkzeug").setLevel(config_class.LOG_LEVEL)

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Extensions
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})
    db.init_app(app)

    # Register Blueprints
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(companies_bp, url_prefix="/api/companies")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(tasks_bp, url_prefix="/api/tasks")

    register_error_handlers(app)

    @app.route("/api/health")
    def health():
        return {"status": "healthy"}

    @app.route("/")
    def home():
        return {
          "endpoints": {
            "auth": {
              "login": "POST /api/auth/login",
              "profile": "GET /api/auth/profile"
            },
            "companies": {
              "list": "GET /api/companies",
              "create": "POST /api/companies",
              "get": "GET /api/companies/<id>",
              "update": "PUT /api/companies/<id>",
              "delete": "DELETE /api/companies/<id>"
            },
            "users": {
              "list": "GET /api/users",
              "create": "POST /api/users",
              "update": "PUT /api/users/<id>",
              "delete": "DELETE /api/users/<id>"
            },
            "tasks": {
              "create": "POST /api/tasks",
              "list": "GET /api/tasks",
              "get": "GET /api/tasks/<id>",
              "update": "PUT /api/tasks/<id>",
              "delete": "DELETE /api/tasks/<id>",
              "list_subtasks": "GET /api/tasks/<id>/subtasks",
              "add_subtask": "POST /api/tasks/<id>/subtasks",
              "update_subtask": "PUT /api/tasks/<id>/subtasks/<sub_id>",
              "delete_subtask": "DELETE /api/tasks/<id>/subtasks/<sub_id>",
              "report": "GET /api/tasks/reports",
              "export": "GET /api/tasks/reports/export",
              "saved_reports": "GET /api/tasks/reports/saved",
              "save_report": "POST /api/tasks/reports/saved/<staff_id>",
              "dashboard": "GET /api/tasks/dashboard/stats"
            }
          },
          "message": "Task Tracker Multi-Tenant API",
          "version": "1.0.0"
        }

    return app


app = create_app()

if __name__ == "__main__":
    with app.app_context():
        db.create_all()
    app.run(debug=True, port=5000)
