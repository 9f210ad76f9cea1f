# Overview: Flask extension instances for the catalog database and its migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# SQLite needs batch mode for ALTER TABLE; constraint names are fixed in the models
migrate = Migrate(compare_type=True, render_as_batch=True)
