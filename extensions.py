from flask_sqlalchemy import SQLAlchemy

# Created here and bound in the app factory so models can import it
# without pulling in app.py.
db = SQLAlchemy()
