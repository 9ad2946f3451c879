from models.db_storage import DBStorage

# Process-wide storage used by the app factory unless a test injects its own
storage = DBStorage()
storage.reload()
