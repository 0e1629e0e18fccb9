import os

# Point the default engine at in-memory SQLite before medreminder is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFIER_BACKEND"] = "log"
