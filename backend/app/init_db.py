from app.database import Base, engine
import app.models  # noqa: F401  registers every table on Base.metadata

# Create all tables
print("Creating database tables...")
Base.metadata.create_all(bind=engine)
print("Tables created successfully!")
