from ..extensions import db


class GenerationLock(db.Model):
    """Single row per lock name; backs the run flag across processes."""
    __tablename__ = 'generation_locks'

    name = db.Column(db.String(64), primary_key=True)
    is_running = db.Column(db.Boolean, nullable=False, default=False)
    owner = db.Column(db.String(255), nullable=True)
    acquired_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f'<GenerationLock {self.name}: running={self.is_running}>'
