from .database import SCHEMA_VERSION, Database, DatabaseContext
from .repository import LibraryRepository
