from models.db_storage import DBStorage

# Process-wide storage; create_app() connects it to the configured DATABASE_URL
storage = DBStorage()
