from partycards import db
import json
import time


class RoomEntry(db.Model):
    """One key of the shared key-value store (e.g. ``rooms/ABC234``)."""
    __tablename__ = 'room_entry'
    id = db.Column(db.Integer, primary_key=True)
    path = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)  # JSON document
    updated_at = db.Column(db.Float, nullable=False, default=time.time)

    def load(self):
        try:
            return json.loads(self.value)
        except (TypeError, ValueError):
            return None

    def dump(self, value):
        self.value = json.dumps(value, sort_keys=True)
        self.updated_at = time.time()
