"""Database models package."""
from models.database import Base, get_session, init_db, close_db, get_engine
from models.account import Account
from models.user import User
from models.company import Company
from models.customer import Customer
from models.conversation import Conversation
from models.message import Message
from models.slack_authorization import SlackAuthorization
from models.slack_conversation_thread import SlackConversationThread

__all__ = [
    "Base",
    "get_session",
    "init_db",
    "close_db",
    "get_engine",
    "Account",
    "User",
    "Company",
    "Customer",
    "Conversation",
    "Message",
    "SlackAuthorization",
    "SlackConversationThread",
]
