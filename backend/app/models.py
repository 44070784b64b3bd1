from app import db
from datetime import datetime
import json
import string
import random

def generate_game_code(length=6):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Game.query.filter_by(game_code=code).first():
            return code

class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(6), unique=True, index=True)
    status = db.Column(db.String(32), default='waiting') # waiting, active, completed
    mode = db.Column(db.String(32), default='CLASSIC', nullable=False)
    # Slice geometry; the piece catalog is rebuilt from it, never stored
    rows = db.Column(db.Integer, nullable=False)
    cols = db.Column(db.Integer, nullable=False)
    time_limit = db.Column(db.Integer, nullable=False, default=600)
    image_ref = db.Column(db.String(256), nullable=True)
    player_a_name = db.Column(db.String(64), nullable=True)
    player_b_name = db.Column(db.String(64), nullable=True)
    # Denormalised from the snapshot for listings
    player_a_score = db.Column(db.Integer, default=0)
    player_a_accuracy = db.Column(db.Integer, default=100)
    player_a_streak = db.Column(db.Integer, default=0)
    player_b_score = db.Column(db.Integer, default=0)
    player_b_accuracy = db.Column(db.Integer, default=100)
    player_b_streak = db.Column(db.Integer, default=0)
    winner = db.Column(db.String(16), nullable=True)
    snapshot = db.Column(db.Text, nullable=True)  # JSON-encoded persistence snapshot
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    def __init__(self, **kwargs):
        code_length = kwargs.pop('code_length', 6)
        super(Game, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code(code_length)

    @property
    def grid_size(self):
        return (self.rows or 0) * (self.cols or 0)

    def load_snapshot(self):
        try:
            return json.loads(self.snapshot) if self.snapshot else None
        except ValueError:
            return None

    def to_dict(self):
        return {
            'id': self.id,
            'game_code': self.game_code,
            'status': self.status,
            'mode': self.mode,
            'rows': self.rows,
            'cols': self.cols,
            'grid_size': self.grid_size,
            'time_limit': self.time_limit,
            'image_ref': self.image_ref,
            'players': {
                'playerA': {
                    'name': self.player_a_name,
                    'score': self.player_a_score,
                    'accuracy': self.player_a_accuracy,
                    'streak': self.player_a_streak,
                },
                'playerB': {
                    'name': self.player_b_name,
                    'score': self.player_b_score,
                    'accuracy': self.player_b_accuracy,
                    'streak': self.player_b_streak,
                },
            },
            'winner': self.winner,
        }
