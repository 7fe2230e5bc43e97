from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from flask_babel import Babel
from flask_security import Security, SQLAlchemyUserDatastore
from flask_mail import Mail

# Initialize extensions (will be initialized in app factory)
db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
babel = Babel()
security = Security()
mail = Mail()

# Will be set after models are imported
user_datastore = None

def init_extensions(app):
    """Initialize Flask extensions"""
    global user_datastore
    
    # Engine options are applied via SQLALCHEMY_ENGINE_OPTIONS in config
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    
    from app.utils import get_locale
    babel.init_app(app, locale_selector=get_locale)
    
    # Flask-Mail handles SMTP connections internally
    mail.init_app(app)
    
    # Flask-Security needs the models
    from app.models import User, Role
    user_datastore = SQLAlchemyUserDatastore(db, User, Role)
    security.init_app(app, user_datastore)
    
    # Deferred donor emails are flushed once the unit of work commits
    from app.services.notifications import register_session_hooks
    register_session_hooks()
