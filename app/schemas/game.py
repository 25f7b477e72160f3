import uuid

from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, JSON, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base_class import Base


def _new_game_id() -> str:
    return str(uuid.uuid4())


class Game(Base):
    __tablename__ = "games" # Explicitly set table name

    id = Column(String(36), primary_key=True, default=_new_game_id)
    display_id = Column(Integer, unique=True, index=True, nullable=False) # Numeric handle shown to players
    status = Column(String, default="lobby", nullable=False, index=True) # lobby, texting, active, solving, completed, archived
    mode = Column(String, default="free", nullable=False)
    created_by = Column(String, nullable=False)
    current_turn_user_id = Column(String, nullable=True)
    max_messages = Column(Integer, nullable=True) # Solve proposal opens automatically at this count

    # Solve proposal sub-state
    solving_proposal_created_at = Column(DateTime(timezone=True), nullable=True)
    solve_proposal_confirmations = Column(JSON, nullable=False, default=list)

    # Anchors the free-for-all countdown. Set iff status == "solving"
    solving_started_at = Column(DateTime(timezone=True), nullable=True)

    team_pot = Column(Integer, default=0, nullable=False)
    team_consecutive_correct = Column(Integer, default=0, nullable=False)
    fever_mode_remaining = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_activity_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    players = relationship("GamePlayer", back_populates="game", cascade="all, delete-orphan", order_by="GamePlayer.joined_at")
    messages = relationship("Message", back_populates="game", cascade="all, delete-orphan", order_by="Message.id")


class GamePlayer(Base):
    __tablename__ = "game_players" # Explicitly set table name

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    score = Column(Integer, default=0, nullable=False) # Cumulative, only increases
    consecutive_correct_guesses = Column(Integer, default=0, nullable=False)
    has_left = Column(Boolean, default=False, nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False) # Defines turn order

    game = relationship("Game", back_populates="players")

    __table_args__ = (UniqueConstraint('game_id', 'user_id', name='_game_player_uc'),)


class Message(Base):
    __tablename__ = "messages" # Explicitly set table name

    # Autoincrement id doubles as the chronological order inside a game
    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    type = Column(String, default="text", nullable=False) # text, system
    client_message_id = Column(String, nullable=True) # Idempotency key for client retries

    content = Column(String, nullable=False)
    cipher_text = Column(String, nullable=False)
    cipher_length = Column(Integer, nullable=False)
    hint_level = Column(Integer, default=0, nullable=False)
    strikes = Column(Integer, default=0, nullable=False)
    ai_hint = Column(Text, nullable=True)

    is_solved = Column(Boolean, default=False, nullable=False)
    solved_by = Column(String, nullable=True)
    winner_points = Column(Integer, nullable=True)
    author_points = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    game = relationship("Game", back_populates="messages")

    __table_args__ = (UniqueConstraint('game_id', 'client_message_id', name='_game_client_message_uc'),)
