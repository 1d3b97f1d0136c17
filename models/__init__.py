"""
Persistence layer: the DBStorage singleton used by the Flask app.

The engine is created lazily by storage.reload(), which the app factory
calls with the configured DATABASE_URL.
"""
from models.db_storage import DBStorage

storage = DBStorage()
