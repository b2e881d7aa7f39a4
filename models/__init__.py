# models/__init__.py
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Import all models
from .company import Company
from .user import User
from .audit_log import AuditLog
from tasks.models import Task, TaskDay, SubTask, Report
