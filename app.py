# app.py

from flask import Flask, g, jsonify, request
from flask_migrate import Migrate
from config import get_config
from extensions import db, login_manager, bcrypt, mail
import os
import uuid
from werkzeug.middleware.proxy_fix import ProxyFix
from logging_config import setup_logging, get_logger

# Configure logging as early as possible
setup_logging(app_name="bulkmail", log_level=os.environ.get('LOG_LEVEL', 'INFO'))
logger = get_logger(__name__)

CAMPAIGNER_TASK = 'tasks.campaign_tasks.process_campaign'
SENDER_TASK = 'tasks.campaign_tasks.send_campaign_email'


# Configure Sentry for production error tracking
def init_sentry():
    """Initialize Sentry error tracking in production."""
    sentry_dsn = os.environ.get('SENTRY_DSN')
    if sentry_dsn and os.environ.get('FLASK_ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.celery import CeleryIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FlaskIntegration(transaction_style='endpoint'),
                SqlalchemyIntegration(),
                CeleryIntegration()
            ],
            traces_sample_rate=0.1,
            environment=os.environ.get('FLASK_ENV', 'development'),
            release=os.environ.get('GIT_SHA', 'unknown')
        )
        logger.info("Sentry error tracking initialized")

init_sentry()


def create_app(config_name=None, test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize app with config
    config_class.init_app(app)

    if test_config:
        app.config.update(test_config)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    db.init_app(app)
    Migrate(app, db)
    mail.init_app(app)

    app.services = _create_registry(app.config)

    # Validate all dependencies are registered
    errors = app.services.validate_dependencies()
    if errors:
        for error in errors:
            logger.error(f"Service dependency error: {error}")
        raise RuntimeError(f"Service dependency errors: {errors}")

    if app.debug:
        logger.debug(f"Service initialization order: {app.services.get_initialization_order()}")

    # Initialize authentication
    bcrypt.init_app(app)
    login_manager.init_app(app)

    from mail_database import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'message': 'You are not authorized to perform this request.'}), 401

    # Add request tracking middleware
    @app.before_request
    def before_request():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        logger.info("Request started",
                    request_id=g.request_id,
                    method=request.method,
                    path=request.path)

    @app.after_request
    def after_request(response):
        logger.info("Request completed",
                    request_id=getattr(g, 'request_id', None),
                    status_code=response.status_code)
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        return response

    # Global error handlers
    @app.errorhandler(500)
    def internal_error(error):
        logger.error("Internal server error",
                     request_id=getattr(g, 'request_id', None),
                     error=str(error))
        return jsonify({'message': 'Internal server error'}), 500

    @app.errorhandler(404)
    def not_found_error(error):
        logger.warning("Page not found",
                       request_id=getattr(g, 'request_id', None),
                       path=request.path)
        return jsonify({'message': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'message': 'Method not allowed'}), 405

    # Health check endpoint - no auth required
    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring"""
        from sqlalchemy import text
        from sqlalchemy.exc import SQLAlchemyError
        health_status = {
            'status': 'healthy',
            'service': 'bulkmail'
        }

        try:
            db.session.execute(text('SELECT 1'))
            health_status['database'] = 'connected'
        except SQLAlchemyError as e:
            health_status['database'] = 'error'
            health_status['status'] = 'degraded'
            logger.error(f"Health check database error: {e}")

        return jsonify(health_status), 200 if health_status['status'] == 'healthy' else 503

    # Register blueprints for routes
    from routes.auth import auth_bp
    from routes.users import users_bp
    from routes.templates_api import templates_api_bp
    from routes.campaigns import campaigns_bp
    from routes.segments import segments_bp
    from routes.subscribers import subscribers_bp
    from routes.ses_routes import ses_bp
    from routes.hooks import hooks_bp
    from routes.unsubscribe import unsubscribe_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(templates_api_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(segments_bp)
    app.register_blueprint(subscribers_bp)
    app.register_blueprint(ses_bp)
    app.register_blueprint(hooks_bp)
    app.register_blueprint(unsubscribe_bp)

    # Register CLI commands
    from scripts import commands
    commands.init_app(app)

    return app


def _create_registry(config):
    """Register every repository and service. Instances are built on first use."""
    from services.service_registry import create_registry
    registry = create_registry()

    # db.session is a scoped_session proxy, so singletons holding it stay request-safe
    registry.register_factory('db_session', lambda: db.session)

    # Repositories
    for name, factory in _REPOSITORY_FACTORIES.items():
        registry.register_factory(name, factory, dependencies=['db_session'])

    # External clients
    registry.register_factory('s3_client', lambda: _create_s3_client(config))
    registry.register_factory('ses_client_factory', lambda: _ses_client_factory())
    registry.register_factory('sns_client_factory', lambda: _sns_client_factory())
    registry.register_factory('celery_app', lambda: _create_celery_app(config))
    registry.register_factory('sns_verifier', lambda: _create_sns_verifier(config))

    registry.register_factory(
        'queue_publisher',
        lambda celery_app: _create_queue_publisher(celery_app, config),
        dependencies=['celery_app']
    )

    # Services
    registry.register_factory(
        'email',
        lambda: _create_email_service(config)
    )
    registry.register_factory(
        'auth',
        lambda user_repository, token_repository, email: _create_auth_service(
            user_repository, token_repository, email, config),
        dependencies=['user_repository', 'token_repository', 'email']
    )
    registry.register_factory(
        'template',
        lambda template_repository, s3_client: _create_template_service(template_repository, s3_client, config),
        dependencies=['template_repository', 's3_client']
    )
    registry.register_factory(
        'boundaries',
        lambda campaign_repository, subscriber_repository: _create_boundaries_service(
            campaign_repository, subscriber_repository),
        dependencies=['campaign_repository', 'subscriber_repository']
    )
    registry.register_factory(
        'ses',
        lambda ses_keys_repository, ses_client_factory, sns_client_factory: _create_ses_service(
            ses_keys_repository, ses_client_factory, sns_client_factory, config),
        dependencies=['ses_keys_repository', 'ses_client_factory', 'sns_client_factory']
    )
    registry.register_factory(
        'segment',
        lambda segment_repository, subscriber_repository: _create_segment_service(
            segment_repository, subscriber_repository),
        dependencies=['segment_repository', 'subscriber_repository']
    )
    registry.register_factory(
        'subscriber',
        lambda subscriber_repository, segment_repository, subscriber_event_repository,
               subscriber_metrics_repository, user_repository, boundaries: _create_subscriber_service(
            subscriber_repository, segment_repository, subscriber_event_repository,
            subscriber_metrics_repository, user_repository, boundaries, config),
        dependencies=['subscriber_repository', 'segment_repository', 'subscriber_event_repository',
                      'subscriber_metrics_repository', 'user_repository', 'boundaries']
    )
    registry.register_factory(
        'campaign',
        lambda campaign_repository, template_repository, segment_repository, user_repository,
               campaign_stats_repository, open_repository, click_repository, bounce_repository,
               complaint_repository, boundaries, ses, template, queue_publisher: _create_campaign_service(
            campaign_repository, template_repository, segment_repository, user_repository,
            campaign_stats_repository, open_repository, click_repository, bounce_repository,
            complaint_repository, boundaries, ses, template, queue_publisher, config),
        dependencies=['campaign_repository', 'template_repository', 'segment_repository', 'user_repository',
                      'campaign_stats_repository', 'open_repository', 'click_repository',
                      'bounce_repository', 'complaint_repository', 'boundaries', 'ses', 'template',
                      'queue_publisher']
    )
    registry.register_factory(
        'campaigner',
        lambda campaign_repository, subscriber_repository, template, queue_publisher: _create_campaigner_service(
            campaign_repository, subscriber_repository, template, queue_publisher, config),
        dependencies=['campaign_repository', 'subscriber_repository', 'template', 'queue_publisher']
    )
    registry.register_factory(
        'sender',
        lambda send_log_repository, ses_client_factory: _create_sender_service(
            send_log_repository, ses_client_factory, config),
        dependencies=['send_log_repository', 'ses_client_factory']
    )
    registry.register_factory(
        'delivery_event',
        lambda user_repository, bounce_repository, complaint_repository, delivery_repository,
               send_repository, open_repository, click_repository, notification_receipt_repository,
               subscriber, sns_verifier: _create_delivery_event_service(
            user_repository, bounce_repository, complaint_repository, delivery_repository,
            send_repository, open_repository, click_repository, notification_receipt_repository,
            subscriber, sns_verifier, config),
        dependencies=['user_repository', 'bounce_repository', 'complaint_repository', 'delivery_repository',
                      'send_repository', 'open_repository', 'click_repository',
                      'notification_receipt_repository', 'subscriber', 'sns_verifier']
    )
    return registry


# Repository Factory Functions

def _repository(module_name, class_name):
    def factory(db_session):
        import importlib
        module = importlib.import_module(f"repositories.{module_name}")
        return getattr(module, class_name)(db_session)
    return factory


_REPOSITORY_FACTORIES = {
    'user_repository': _repository('user_repository', 'UserRepository'),
    'token_repository': _repository('token_repository', 'TokenRepository'),
    'subscriber_repository': _repository('subscriber_repository', 'SubscriberRepository'),
    'segment_repository': _repository('segment_repository', 'SegmentRepository'),
    'template_repository': _repository('template_repository', 'TemplateRepository'),
    'campaign_repository': _repository('campaign_repository', 'CampaignRepository'),
    'ses_keys_repository': _repository('ses_keys_repository', 'SesKeysRepository'),
    'send_log_repository': _repository('send_log_repository', 'SendLogRepository'),
    'notification_receipt_repository': _repository('send_log_repository', 'NotificationReceiptRepository'),
    'subscriber_event_repository': _repository('subscriber_metrics_repository', 'SubscriberEventRepository'),
    'subscriber_metrics_repository': _repository('subscriber_metrics_repository', 'SubscriberMetricsRepository'),
    'campaign_stats_repository': _repository('delivery_event_repository', 'CampaignStatsRepository'),
    'bounce_repository': _repository('delivery_event_repository', 'BounceRepository'),
    'complaint_repository': _repository('delivery_event_repository', 'ComplaintRepository'),
    'delivery_repository': _repository('delivery_event_repository', 'DeliveryRepository'),
    'send_repository': _repository('delivery_event_repository', 'SendRepository'),
    'open_repository': _repository('delivery_event_repository', 'OpenRepository'),
    'click_repository': _repository('delivery_event_repository', 'ClickRepository'),
}


# Service Factory Functions
# These are only called when the service is first requested

def _create_s3_client(config):
    from utils.aws_clients import get_s3_client
    return get_s3_client(config)


def _ses_client_factory():
    from utils.aws_clients import get_ses_client
    return get_ses_client


def _sns_client_factory():
    from utils.aws_clients import get_sns_client
    return get_sns_client


def _create_celery_app(config):
    from celery_config import create_celery_app
    return create_celery_app('bulkmail', config)


def _create_sns_verifier(config):
    from services.sns_verification import SnsMessageVerifier
    return SnsMessageVerifier(timeout=config.get('SNS_CERT_TIMEOUT', 10))


def _create_queue_publisher(celery_app, config):
    from services.queue_publisher import QueuePublisher
    return QueuePublisher(celery_app, task_names={
        config['CAMPAIGNER_QUEUE']: CAMPAIGNER_TASK,
        config['SENDER_QUEUE']: SENDER_TASK,
    })


def _create_email_service(config):
    from services.email_service import EmailService
    return EmailService(
        mail_client=mail if config.get('MAIL_SERVER') or config.get('MAIL_SUPPRESS_SEND') else None,
        app_url=config['APP_URL'],
        default_sender=config.get('MAIL_DEFAULT_SENDER')
    )


def _create_auth_service(user_repository, token_repository, email_service, config):
    from services.auth_service import AuthService
    logger.info("Initializing AuthService with repositories")
    return AuthService(
        user_repository=user_repository,
        token_repository=token_repository,
        email_service=email_service,
        bcrypt=bcrypt,
        enable_signup=config.get('ENABLE_SIGNUP', False),
        verify_email=config.get('VERIFY_EMAIL', False),
        source=config.get('SOURCE', ''),
        forgot_password_hours=config.get('FORGOT_PASSWORD_TOKEN_HOURS', 1),
        verify_email_hours=config.get('VERIFY_EMAIL_TOKEN_HOURS', 48)
    )


def _create_template_service(template_repository, s3_client, config):
    from services.template_service import TemplateService
    return TemplateService(template_repository, s3_client, config['TEMPLATES_BUCKET'])


def _create_boundaries_service(campaign_repository, subscriber_repository):
    from services.boundaries_service import BoundariesService
    return BoundariesService(campaign_repository, subscriber_repository)


def _create_ses_service(ses_keys_repository, ses_client_factory, sns_client_factory, config):
    from services.ses_service import SesService
    return SesService(
        ses_keys_repository=ses_keys_repository,
        ses_client_factory=ses_client_factory,
        sns_client_factory=sns_client_factory,
        app_url=config['APP_URL'],
        topic_name=config['SNS_TOPIC_NAME'],
        configuration_set_name=config['SES_CONFIGURATION_SET']
    )


def _create_segment_service(segment_repository, subscriber_repository):
    from services.segment_service import SegmentService
    return SegmentService(segment_repository, subscriber_repository)


def _create_subscriber_service(subscriber_repository, segment_repository, event_repository,
                               metrics_repository, user_repository, boundaries_service, config):
    from services.subscriber_service import SubscriberService
    return SubscriberService(
        subscriber_repository=subscriber_repository,
        segment_repository=segment_repository,
        event_repository=event_repository,
        metrics_repository=metrics_repository,
        user_repository=user_repository,
        boundaries_service=boundaries_service,
        unsubscribe_secret=config['UNSUBSCRIBE_SECRET']
    )


def _create_campaign_service(campaign_repository, template_repository, segment_repository, user_repository,
                             stats_repository, open_repository, click_repository, bounce_repository,
                             complaint_repository, boundaries_service, ses_service, template_service,
                             queue_publisher, config):
    from services.campaign_service import CampaignService
    return CampaignService(
        campaign_repository=campaign_repository,
        template_repository=template_repository,
        segment_repository=segment_repository,
        user_repository=user_repository,
        stats_repository=stats_repository,
        event_repositories={
            'opens': open_repository,
            'clicks': click_repository,
            'bounces': bounce_repository,
            'complaints': complaint_repository,
        },
        boundaries_service=boundaries_service,
        ses_service=ses_service,
        template_service=template_service,
        queue_publisher=queue_publisher,
        campaigner_queue=config['CAMPAIGNER_QUEUE']
    )


def _create_campaigner_service(campaign_repository, subscriber_repository, template_service,
                               queue_publisher, config):
    from services.campaigner_service import CampaignerService
    return CampaignerService(
        campaign_repository=campaign_repository,
        subscriber_repository=subscriber_repository,
        template_service=template_service,
        queue_publisher=queue_publisher,
        unsubscribe_secret=config['UNSUBSCRIBE_SECRET'],
        app_url=config['APP_URL'],
        sender_queue=config['SENDER_QUEUE'],
        batch_size=config.get('SUBSCRIBERS_PER_BATCH', 1000)
    )


def _create_sender_service(send_log_repository, ses_client_factory, config):
    from services.sender_service import SenderService
    return SenderService(send_log_repository, ses_client_factory, config['SES_CONFIGURATION_SET'])


def _create_delivery_event_service(user_repository, bounce_repository, complaint_repository,
                                   delivery_repository, send_repository, open_repository, click_repository,
                                   receipt_repository, subscriber_service, verifier, config):
    from services.delivery_event_service import DeliveryEventService
    return DeliveryEventService(
        user_repository=user_repository,
        event_repositories={
            'bounce': bounce_repository,
            'complaint': complaint_repository,
            'delivery': delivery_repository,
            'send': send_repository,
            'open': open_repository,
            'click': click_repository,
        },
        receipt_repository=receipt_repository,
        subscriber_service=subscriber_service,
        verifier=verifier,
        timeout=config.get('SNS_CERT_TIMEOUT', 10)
    )
