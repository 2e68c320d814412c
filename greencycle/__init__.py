from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
import logging
import os

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    from greencycle.config import config
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )

    # Sentry error monitoring (optional -- only active when SENTRY_DSN is set)
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
        )

    # Initialize extensions
    from greencycle.extensions import limiter
    db.init_app(app)
    CORS(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}})
    limiter.init_app(app)

    from greencycle.errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from greencycle.routes import devices_bp, pickups_bp, ngos_bp, gamification_bp, impact_bp

    api_prefix = app.config['API_PREFIX']
    app.register_blueprint(devices_bp, url_prefix=f'{api_prefix}/devices')
    app.register_blueprint(pickups_bp, url_prefix=f'{api_prefix}/pickups')
    app.register_blueprint(ngos_bp, url_prefix=f'{api_prefix}/ngos')
    app.register_blueprint(gamification_bp, url_prefix=f'{api_prefix}/gamification')
    app.register_blueprint(impact_bp, url_prefix=f'{api_prefix}/impact')

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy', 'service': 'greencycle-engine'}, 200

    if app.config['SEED_DEFAULTS']:
        from greencycle.services.eco_formulas import seed_default_formulas
        from greencycle.services.gamification import seed_default_badges

        with app.app_context():
            db.create_all()
            seed_default_formulas()
            seed_default_badges()
            logger.info('Default eco-impact formulas and badges seeded')

    return app
