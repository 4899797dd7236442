# celery_worker.py
from app import create_app
from celery_config import create_celery_app

# Create the Flask app instance. Tasks run inside its app context.
flask_app = create_app()

# Create Celery instance with shared configuration
celery = create_celery_app(__name__, flask_app.config)


# Set the custom Task class to ensure tasks run within the Flask app context.
class ContextTask(celery.Task):
    def __call__(self, *args, **kwargs):
        with flask_app.app_context():
            return self.run(*args, **kwargs)

celery.Task = ContextTask

# --- Celery Beat Schedule ---
celery.conf.beat_schedule = {
    'start-scheduled-campaigns': {
        'task': 'tasks.campaign_tasks.start_scheduled_campaigns',
        # Executes every 60 seconds to start campaigns whose schedule is due
        'schedule': 60.0,
    },
}
celery.conf.timezone = 'UTC'

# Import tasks to ensure they're registered with Celery
import tasks.campaign_tasks  # noqa: E402,F401
