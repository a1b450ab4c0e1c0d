import os

# keep the settings from creating ./data during the test run
os.environ.setdefault("EXPENSES_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EXPENSES_DEFAULT_CURRENCY", "PKR")
