import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

SECRET_KEY = os.getenv("SECRET_KEY", "task-tracker-secret-key")

# SQLite for local runs, point DATABASE_URL at PostgreSQL in deployment
DEFAULT_DB = f"sqlite:///{os.path.join(BASE_DIR, 'tasks.db')}"


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", DEFAULT_DB)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = SECRET_KEY
    JWT_EXPIRY_HOURS = int(os.getenv("JWT_EXPIRY_HOURS", "24"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # "explicit": tasks start empty unless subtasks are seeded in the request
    # "autofill": one subtask per non-Sunday day in the task range
    TASK_SEED_MODE = os.getenv("TASK_SEED_MODE", "explicit")

    # Upper bound for the task list "limit" query parameter
    MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret-key"
    LOG_LEVEL = "WARNING"
    TASK_SEED_MODE = "explicit"
