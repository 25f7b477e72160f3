# app/db/base.py
# Import all the models, so that Base has them before create_all is called
from app.db.base_class import Base
from app.schemas.game import Game, GamePlayer, Message
from app.schemas.hint_request import AiHintRequest
from app.schemas.system import SystemAlert
