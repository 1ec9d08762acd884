import logging
import os
from flask import Flask
from flask_cors import CORS
import redis
from extensions import db
from dotenv import load_dotenv

load_dotenv() # Load environment variables from .env file BEFORE importing routes

import config
import routes
from utilities.logger import setup_logger

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    setup_logger(config.LOG_LEVEL)

    app = Flask(__name__)
    CORS(app, expose_headers=['Content-Disposition', 'X-Interview-Id', 'X-Feedback-Url'])

    # Configure the database from the environment variable
    database_url = os.environ.get('DATABASE_URL')
    if test_config:
        database_url = test_config.get('SQLALCHEMY_DATABASE_URI', database_url)
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Please create a .env file or set the environment variable.")

    # Heroku/Render use postgres://, but SQLAlchemy needs postgresql://
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    if test_config:
        app.config.update(test_config)

    # Initialize the database with the app
    db.init_app(app)

    # Connect to Redis (drafts, selections and the mock interview hand-off)
    redis_url = os.environ.get('REDIS_URL', config.REDIS_URL)
    try:
        r = redis.from_url(redis_url, decode_responses=True)
        r.ping() # Check connection
        logger.info("Successfully connected to Redis.")
    except (redis.exceptions.ConnectionError, TypeError) as e:
        logger.error("Could not connect to Redis: %s", e)
        r = None

    # Initialize routes
    routes.init_app(app, r)

    # Create database tables if they don't exist
    with app.app_context():
        import models  # noqa: F401  (registers the tables)
        db.create_all()

    return app

if __name__ == '__main__':
    app = create_app()
    app.run(port=5001, debug=True)
