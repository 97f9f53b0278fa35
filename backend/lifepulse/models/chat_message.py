"""
Chat messages exchanged between a requester and their donors.
"""
from datetime import datetime
from lifepulse import db


class ChatMessage(db.Model):
    __tablename__ = 'chat_messages'

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('blood_requests.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    sender = db.relationship('User', foreign_keys=[sender_id])
    request = db.relationship('BloodRequest', backref=db.backref('chat_messages', cascade='all, delete-orphan'))

    def to_dict(self):
        return {
            'id': self.id,
            'requestId': self.request_id,
            'sender': {
                'id': self.sender_id,
                'name': self.sender.name if self.sender else None,
                'role': self.sender.role if self.sender else None,
            },
            'message': self.message,
            'timestamp': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<ChatMessage {self.id} request={self.request_id}>'
