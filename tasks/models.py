from datetime import datetime
from models import db

TASK_STATUSES = ("pending", "in-progress", "completed")
PRIORITIES = ("low", "medium", "high")


class Task(db.Model):
    __tablename__ = 'tasks'
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    assigned_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    priority = db.Column(db.String(10), default='medium')

    # Derived from the subtasks by tasks.progress; never written by clients
    status = db.Column(db.String(20), default='pending')
    progress = db.Column(db.Integer, default=0)

    # Optimistic concurrency: every mutation bumps it, a stale write fails
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship('Company', lazy=True)
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id], lazy=True)
    assigned_by = db.relationship('User', foreign_keys=[assigned_by_id], lazy=True)
    days = db.relationship(
        'TaskDay', back_populates='task', order_by='TaskDay.date',
        cascade="all, delete-orphan", lazy=True
    )

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def find_day(self, day):
        for bucket in self.days:
            if bucket.date == day:
                return bucket
        return None

    def to_dict(self, include_days=False):
        subtasks = [sub for day in self.days for sub in day.subtasks]
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "company_id": self.company_id,
            "company": self.company.name if self.company else None,
            "assigned_to": _user_ref(self.assigned_to),
            "assigned_by": _user_ref(self.assigned_by),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "priority": self.priority,
            "status": self.status,
            "progress": self.progress,
            "total_hours": sum(sub.hours_spent or 0 for sub in subtasks),
            "completed_subtasks": sum(1 for sub in subtasks if sub.status == "completed"),
            "total_subtasks": len(subtasks),
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_days:
            data["days"] = [day.to_dict() for day in self.days]
        return data


def _user_ref(user):
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


class TaskDay(db.Model):
    """All subtasks recorded against one calendar date of a task."""
    __tablename__ = 'task_days'
    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    task = db.relationship('Task', back_populates='days')
    subtasks = db.relationship(
        'SubTask', back_populates='day', order_by='SubTask.id',
        cascade="all, delete-orphan", lazy=True
    )

    __table_args__ = (db.UniqueConstraint('task_id', 'date', name='uq_task_day'),)

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "subtasks": [sub.to_dict() for sub in self.subtasks],
        }


class SubTask(db.Model):
    __tablename__ = 'subtasks'
    id = db.Column(db.Integer, primary_key=True)
    day_id = db.Column(db.Integer, db.ForeignKey('task_days.id'), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default='pending')
    hours_spent = db.Column(db.Float, default=0.0)
    remarks = db.Column(db.Text, default='')
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    day = db.relationship('TaskDay', back_populates='subtasks')

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.day.date.isoformat() if self.day else None,
            "description": self.description,
            "status": self.status,
            "hours_spent": self.hours_spent,
            "remarks": self.remarks,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Report(db.Model):
    """A saved monthly snapshot of one staff member's task figures."""
    __tablename__ = 'reports'
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id'), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    stats = db.Column(db.JSON, default=dict)
    generated_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    staff = db.relationship('User', lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "staff": _user_ref(self.staff),
            "month": self.month,
            "year": self.year,
            "stats": self.stats or {},
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }
