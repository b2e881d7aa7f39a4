from . import db
from datetime import datetime


class Company(db.Model):
    __tablename__ = 'companies'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    status = db.Column(db.String(20), default="active")  # active/inactive

    # Cached member count, adjusted in the same transaction as every
    # membership change (see users service) and reconciled by manage.py
    user_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = db.relationship('User', backref='company', lazy=True, foreign_keys='User.company_id')

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "status": self.status,
            "user_count": self.user_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def adjust_user_count(company_id, delta):
    """Moves the cached member count; call inside the membership write's transaction."""
    if company_id is None:
        return
    company = db.session.get(Company, company_id)
    if company is not None:
        company.user_count = max(0, (company.user_count or 0) + delta)


def reconcile_user_counts():
    """Recomputes every cached count from real membership. Returns {company_id: (old, new)} for drifted rows."""
    from models.user import User

    actual = dict(
        db.session.query(User.company_id, db.func.count(User.id))
        .filter(User.company_id.isnot(None))
        .group_by(User.company_id)
        .all()
    )
    drifted = {}
    for company in Company.query.all():
        expected = actual.get(company.id, 0)
        if company.user_count != expected:
            drifted[company.id] = (company.user_count, expected)
            company.user_count = expected
    return drifted
